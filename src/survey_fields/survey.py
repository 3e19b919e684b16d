"""SurveyDefinition — the JSON survey the form renderer displays.

Only the parts the server needs are interpreted: the list of question
elements (to find questions with an "Other" option) and string content
containing Jinja2 placeholders such as ``Welcome from {{ source }}!``,
which are filled from bound URL parameters.  Rendering uses a sandboxed
environment since survey authors are not trusted with Python access.
"""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any, Iterator

import jinja2
from jinja2.sandbox import SandboxedEnvironment

logger = logging.getLogger(__name__)

# Keys under which SurveyJS nests child elements
_CONTAINER_KEYS = ("pages", "elements", "templateElements")


class SurveyDefinition:
    """A parsed survey JSON document.

    Args:
        data: the survey mapping (``{"title": ..., "pages": [...]}``)
    """

    def __init__(self, data: dict[str, Any]) -> None:
        if not isinstance(data, dict):
            raise ValueError("Survey definition must be a JSON object")
        self.data = data
        self._env = SandboxedEnvironment(
            undefined=jinja2.ChainableUndefined,
            autoescape=False,
        )

    @classmethod
    def from_json(cls, text: str) -> SurveyDefinition:
        return cls(json.loads(text))

    @classmethod
    def from_file(cls, path: Path | str) -> SurveyDefinition:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Missing survey file: {path}")
        with path.open("r", encoding="utf-8") as f:
            survey = cls(json.load(f))
        logger.info(
            "Loaded survey '%s' with %d questions",
            survey.title or path.stem,
            sum(1 for _ in survey.questions()),
        )
        return survey

    @property
    def title(self) -> str | None:
        title = self.data.get("title")
        return title if isinstance(title, str) else None

    # ------------------------------------------------------------------
    # Element walk
    # ------------------------------------------------------------------

    def questions(self) -> Iterator[dict[str, Any]]:
        """Every named element, depth-first in document order."""
        yield from _walk(self.data)

    def question_names(self) -> list[str]:
        return [q["name"] for q in self.questions()]

    def other_fields(self) -> list[str]:
        """Questions offering an "Other" choice with a free-text comment."""
        return [
            q["name"]
            for q in self.questions()
            if q.get("showOtherItem") or q.get("hasOther")
        ]

    # ------------------------------------------------------------------
    # Interpolation
    # ------------------------------------------------------------------

    def render(self, context: dict[str, Any]) -> dict[str, Any]:
        """Copy of the survey with template strings filled from ``context``.

        Placeholders with no value render as empty strings.
        """
        return self._render_node(copy.deepcopy(self.data), context)

    def _render_node(self, node: Any, context: dict[str, Any]) -> Any:
        if isinstance(node, dict):
            return {k: self._render_node(v, context) for k, v in node.items()}
        if isinstance(node, list):
            return [self._render_node(v, context) for v in node]
        if isinstance(node, str) and ("{{" in node or "{%" in node):
            try:
                return self._env.from_string(node).render(**context)
            except jinja2.TemplateError as exc:
                # SurveyJS uses {name} syntax too; leave unparseable text alone
                logger.warning("Could not render survey text %r: %s", node, exc)
                return node
        return node


def _walk(node: Any) -> Iterator[dict[str, Any]]:
    if isinstance(node, dict):
        if isinstance(node.get("name"), str) and node.get("type") not in (None, "panel"):
            yield node
        for key in _CONTAINER_KEYS:
            for child in node.get(key) or []:
                yield from _walk(child)
    elif isinstance(node, list):
        for child in node:
            yield from _walk(child)
