"""
Trigger matching - decides whether an event starts a workflow run.

Pure functions over immutable trigger rules. Pattern syntax follows GitHub
Actions filter patterns:

    *    any characters except '/'
    **   any characters, including '/'
    ?    zero or one of the preceding character
    +    one or more of the preceding character
    [..] a character class
"""

import re
from functools import lru_cache
from typing import Iterable

from conveyor_controller.src.models.event import Event
from conveyor_controller.src.models.workflow import (
    EventKind,
    PipelineDefinition,
    TriggerRule,
)

@lru_cache(maxsize=1024)
def compile_pattern(pattern: str) -> "re.Pattern[str]":
    """Translate a filter pattern into an anchored regex."""
    out = []
    i = 0
    while i < len(pattern):
        char = pattern[i]
        if pattern.startswith("**/", i):
            out.append("(?:.*/)?")
            i += 3
            continue
        if pattern.startswith("**", i):
            out.append(".*")
            i += 2
            continue
        if char == "*":
            out.append("[^/]*")
        elif char in "?+" and out:
            out.append(char)
        elif char == "[":
            end = pattern.find("]", i + 1)
            if end == -1:
                out.append(re.escape(char))
            else:
                out.append(pattern[i:end + 1])
                i = end
        else:
            out.append(re.escape(char))
        i += 1
    return re.compile("".join(out) + r"\Z")

def pattern_matches(pattern: str, value: str) -> bool:
    return compile_pattern(pattern).match(value) is not None

def any_match(patterns: Iterable[str], value: str) -> bool:
    return any(pattern_matches(p, value) for p in patterns)

def _filter(include: Iterable[str], exclude: Iterable[str], value: str) -> bool:
    include = list(include)
    if include:
        return any_match(include, value)
    return not any_match(exclude, value)

def ref_matches(rule: TriggerRule, event: Event) -> bool:
    """Check branch/tag filters against the event ref."""
    branch_filters = bool(rule.branches or rule.branches_ignore)
    tag_filters = bool(rule.tags or rule.tags_ignore)

    if event.kind == EventKind.PULL_REQUEST:
        if not branch_filters:
            return True
        target = event.base_ref or event.ref
        return _filter(rule.branches, rule.branches_ignore, _short_branch(target))

    if event.is_tag:
        if tag_filters:
            return _filter(rule.tags, rule.tags_ignore, event.ref_name)
        return not branch_filters

    if branch_filters:
        return _filter(rule.branches, rule.branches_ignore, event.ref_name)
    return not tag_filters

def paths_match(rule: TriggerRule, event: Event) -> bool:
    """
    Check path filters against the changed paths.

    `paths-ignore` suppresses the rule only when every changed path is
    ignored. An empty change set never suppresses.
    """
    if event.kind == EventKind.PUSH and event.is_tag:
        return True

    changed = event.changed_paths
    if not changed:
        return True

    if rule.paths_ignore and all(any_match(rule.paths_ignore, p) for p in changed):
        return False

    if rule.paths and not any(any_match(rule.paths, p) for p in changed):
        return False

    return True

def rule_matches(event: Event, rule: TriggerRule) -> bool:
    if event.kind not in rule.events:
        return False
    return ref_matches(rule, event) and paths_match(rule, event)

def matches(event: Event, triggers: Iterable[TriggerRule]) -> bool:
    """True if any trigger rule matches the event."""
    return any(rule_matches(event, rule) for rule in triggers)

def trigger_key(pipeline: PipelineDefinition, event: Event) -> str:
    """Cancellation group of a run: workflow name plus normalized ref."""
    return f"{pipeline.name}@{event.ref}"

def _short_branch(ref: str) -> str:
    prefix = "refs/heads/"
    return ref[len(prefix):] if ref.startswith(prefix) else ref
