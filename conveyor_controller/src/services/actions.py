"""
Built-in actions for `uses:` steps.

Each action translates its `with:` inputs into shell commands that run in
the job's environment like any `run:` step.
"""

import logging
import re
import shlex
from typing import Any, Callable, Dict, List, Tuple

from conveyor_controller.src.models.workflow import StepDefinition

logger = logging.getLogger(__name__)

ActionHandler = Callable[[Dict[str, str], Dict[str, Any]], List[str]]

_ACTIONS: Dict[str, ActionHandler] = {}

EXPRESSION_RE = re.compile(r"\$\{\{\s*(.*?)\s*\}\}")
CONTEXT_PATH_RE = re.compile(r"^[A-Za-z_][\w-]*(\.[A-Za-z_][\w-]*)*$")

class ActionError(Exception):
    """Raised when a step's action cannot be resolved to commands."""
    pass

def action(name: str):
    """Register a handler under an action name (owner/repo)."""
    def decorator(func: ActionHandler) -> ActionHandler:
        _ACTIONS[name.lower()] = func
        return func
    return decorator

def split_action_ref(uses: str) -> Tuple[str, str]:
    """Split `owner/repo@ref` into ("owner/repo", "ref")."""
    name, _, ref = uses.partition("@")
    return name.strip().lower(), ref.strip()

def is_known_action(uses: str) -> bool:
    name, _ = split_action_ref(uses)
    return name in _ACTIONS

def known_actions() -> List[str]:
    return sorted(_ACTIONS)

def find_invalid_expressions(text: str) -> List[str]:
    """Return expressions that are not plain context lookups."""
    return [
        expr for expr in EXPRESSION_RE.findall(text)
        if not CONTEXT_PATH_RE.match(expr)
    ]

def render_expressions(text: str, context: Dict[str, Any]) -> str:
    """Substitute ${{ a.b }} lookups. Unknown names render as empty strings."""
    def lookup(match: re.Match) -> str:
        value: Any = context
        for part in match.group(1).split("."):
            if not isinstance(value, dict) or part not in value:
                return ""
            value = value[part]
        if isinstance(value, bool):
            return "true" if value else "false"
        return "" if value is None else str(value)

    return EXPRESSION_RE.sub(lookup, text)

def resolve_step_commands(step: StepDefinition, context: Dict[str, Any]) -> List[str]:
    """
    Resolve a step to the shell commands it runs.
    An empty list means the step has nothing to execute.
    """
    if step.run is not None:
        return [render_expressions(step.run, context)]

    name, _ = split_action_ref(step.uses or "")
    handler = _ACTIONS.get(name)
    if handler is None:
        raise ActionError(f"Unsupported action '{step.uses}'")

    inputs = {
        key: render_expressions(value, context)
        for key, value in step.with_.items()
    }
    return handler(inputs, context)

def _flag(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes")

@action("actions/checkout")
def checkout(inputs: Dict[str, str], context: Dict[str, Any]) -> List[str]:
    github = context.get("github", {})
    clone_url = inputs.get("repository-url") or github.get("clone_url", "")
    if not clone_url:
        raise ActionError("actions/checkout needs the repository clone URL")

    ref = inputs.get("ref") or github.get("sha") or github.get("ref", "")
    depth = inputs.get("fetch-depth", "1")

    fetch = ["git", "fetch", "-q"]
    if depth and depth != "0":
        fetch += ["--depth", depth]
    fetch += ["origin", ref] if ref else ["origin"]

    commands = [
        "git init -q .",
        f"git remote add origin {shlex.quote(clone_url)}",
        " ".join(shlex.quote(part) for part in fetch),
        "git checkout -q FETCH_HEAD" if ref else "git checkout -q origin/HEAD",
    ]
    if _flag(inputs.get("submodules", "false")) or inputs.get("submodules") == "recursive":
        commands.append("git submodule update -q --init --recursive")
    return commands

@action("styfle/cancel-workflow-action")
def cancel_previous_runs(inputs: Dict[str, str], context: Dict[str, Any]) -> List[str]:
    # Superseded runs are already cancelled by the run supervisor
    logger.debug("cancel-workflow-action is handled natively, nothing to run")
    return []

@action("actions-rs/toolchain")
def rust_toolchain(inputs: Dict[str, str], context: Dict[str, Any]) -> List[str]:
    toolchain = inputs.get("toolchain") or "stable"
    install = ["rustup", "toolchain", "install", toolchain]
    install += ["--profile", inputs.get("profile") or "default"]

    components = [c.strip() for c in inputs.get("components", "").split(",") if c.strip()]
    for component in components:
        install += ["--component", component]
    if inputs.get("target"):
        install += ["--target", inputs["target"]]

    commands = [" ".join(shlex.quote(part) for part in install)]
    if _flag(inputs.get("default", "false")):
        commands.append(f"rustup default {shlex.quote(toolchain)}")
    if _flag(inputs.get("override", "false")):
        commands.append(f"rustup override set {shlex.quote(toolchain)}")
    return commands

@action("actions-rs/cargo")
def cargo(inputs: Dict[str, str], context: Dict[str, Any]) -> List[str]:
    command = inputs.get("command", "").strip()
    if not command:
        raise ActionError("actions-rs/cargo requires the 'command' input")

    parts = ["cargo"]
    if inputs.get("toolchain"):
        parts.append(f"+{inputs['toolchain']}")
    parts.append(command)
    if inputs.get("args"):
        parts.append(inputs["args"])
    return [" ".join(parts)]

@action("embarkstudios/cargo-deny-action")
def cargo_deny(inputs: Dict[str, str], context: Dict[str, Any]) -> List[str]:
    parts = [
        "cargo", "deny",
        "--manifest-path", shlex.quote(inputs.get("manifest-path") or "Cargo.toml"),
        "--log-level", inputs.get("log-level") or "warn",
    ]
    arguments = inputs.get("arguments", "--all-features")
    if arguments:
        parts.append(arguments)
    parts.append(inputs.get("command") or "check")
    if inputs.get("command-arguments"):
        parts.append(inputs["command-arguments"])
    return [" ".join(parts)]
