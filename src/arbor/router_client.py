"""
Chat-completions client for task routing.

Given a task description and the repo's worktrees, asks a model whether the
task belongs in an existing worktree or a new branch.

Configuration via environment variables:
    ARBOR_ROUTER_API_URL       (default: OpenAI chat completions)
    ARBOR_ROUTER_MODEL         (default: gpt-4o-mini)
    ARBOR_ROUTER_API_KEY_VAR   name of the variable holding the key
                               (default: OPENAI_API_KEY)
"""

import http.client
import json
import os
import urllib.error
import urllib.request
from typing import Optional

from .domain import RouteAction, RouteProposal, RouteRequest
from .exceptions import RoutingError
from .logging_config import get_logger

logger = get_logger("router_client")

DEFAULT_API_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_API_KEY_VAR = "OPENAI_API_KEY"
REQUEST_TIMEOUT = 30.0

ROUTING_PROMPT = """You route coding tasks to git worktrees in the repository "{repo}".

## Task
{prompt}

## Current branch
{current_branch}

## Worktrees
{worktrees}

## Instructions
Decide whether the task continues work in one of the worktrees above or needs
a new branch. Prefer an existing worktree only when the task clearly continues
its work; never pick a merged worktree. For a new branch, choose a short
kebab-case name and the branch it should start from.

Respond with a single JSON object and nothing else:
{{"action": "use_existing" | "create_new", "worktree": "<name>", "parent": "<base branch, create_new only>", "reasoning": "<one sentence>"}}"""


def get_router_config() -> dict:
    key_var = os.environ.get("ARBOR_ROUTER_API_KEY_VAR", DEFAULT_API_KEY_VAR)
    return {
        "api_url": os.environ.get("ARBOR_ROUTER_API_URL", DEFAULT_API_URL),
        "model": os.environ.get("ARBOR_ROUTER_MODEL", DEFAULT_MODEL),
        "api_key": os.environ.get(key_var, ""),
    }


def build_routing_prompt(request: RouteRequest) -> str:
    lines = []
    for wt in request.worktrees:
        flags = []
        if wt.is_dirty:
            flags.append("dirty")
        if wt.is_ahead:
            flags.append("unpushed commits")
        if wt.pr_state:
            flags.append(f"PR {wt.pr_state.lower()}")
        if wt.is_merged:
            flags.append("merged")
        detail = f" ({', '.join(flags)})" if flags else ""
        commit = f" - last commit: {wt.last_commit}" if wt.last_commit else ""
        lines.append(f"- {wt.name}{detail}{commit}")
    return ROUTING_PROMPT.format(
        repo=request.repo_name,
        prompt=request.prompt,
        current_branch=request.current_branch or "(none)",
        worktrees="\n".join(lines) or "(none)",
    )


def parse_route_response(text: str) -> RouteProposal:
    """Extract and validate the JSON proposal from a model reply.

    Raises:
        RoutingError: If no valid proposal is found
    """
    text = text.strip()
    if text.startswith("```"):
        inside = []
        in_block = False
        for line in text.split("\n"):
            if line.startswith("```"):
                in_block = not in_block
                continue
            if in_block:
                inside.append(line)
        text = "\n".join(inside)

    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end < start:
        raise RoutingError(f"no JSON object found in response: {text[:200]}")
    try:
        data = json.loads(text[start:end + 1])
    except json.JSONDecodeError as e:
        raise RoutingError(f"failed to parse JSON: {e}") from e

    if not isinstance(data, dict):
        raise RoutingError("response is not a JSON object")
    try:
        action = RouteAction(_string_field(data, "action"))
    except ValueError:
        raise RoutingError(f"invalid action: {data.get('action')}") from None
    worktree = _string_field(data, "worktree")
    if not worktree:
        raise RoutingError("worktree name is empty")
    parent = _string_field(data, "parent")
    if action == RouteAction.CREATE_NEW and not parent:
        parent = "main"
    if action == RouteAction.USE_EXISTING:
        parent = ""
    return RouteProposal(action, worktree, parent, _string_field(data, "reasoning"))


def _string_field(data: dict, key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise RoutingError(f"field {key!r} must be a string, got {type(value).__name__}")
    return value.strip()


class ChatTaskRouter:
    """Production implementation of TaskRouterInterface."""

    def __init__(self, api_url: Optional[str] = None, model: Optional[str] = None, api_key: Optional[str] = None):
        config = get_router_config()
        self.api_url = api_url or config["api_url"]
        self.model = model or config["model"]
        self.api_key = api_key if api_key is not None else config["api_key"]

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    def route(self, request: RouteRequest) -> RouteProposal:
        if not self.available:
            raise RoutingError("router API key not set (see ARBOR_ROUTER_API_KEY_VAR)")

        payload = json.dumps({
            "model": self.model,
            "temperature": 0.2,
            "messages": [{"role": "user", "content": build_routing_prompt(request)}],
        }).encode("utf-8")
        req = urllib.request.Request(
            self.api_url,
            data=payload,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            method="POST",
        )

        try:
            with urllib.request.urlopen(req, timeout=REQUEST_TIMEOUT) as response:
                result = json.loads(response.read().decode("utf-8"))
        except urllib.error.HTTPError as e:
            logger.warning(f"Router API error: {e.code}")
            raise RoutingError(f"router API error: HTTP {e.code}") from e
        except urllib.error.URLError as e:
            logger.warning(f"Router API error: {e.reason}")
            raise RoutingError(f"router API error: {e.reason}") from e
        except TimeoutError as e:
            logger.warning("Router API timeout")
            raise RoutingError("router API timeout") from e
        except (OSError, http.client.HTTPException) as e:
            logger.warning(f"Router API connection error: {e}")
            raise RoutingError(f"router API connection error: {e}") from e
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise RoutingError(f"router API returned invalid JSON: {e}") from e

        try:
            content = result["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise RoutingError("router API returned no message") from e
        if content is not None and not isinstance(content, str):
            raise RoutingError("router API returned a non-text message")
        return parse_route_response(content or "")
