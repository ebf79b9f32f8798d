"""
Rutube: default steps, with its own autoplay parameter.
"""

from __future__ import annotations

from embedcore.models import ExecutionContext


async def rutube_autoplay(env: ExecutionContext) -> None:
    for snippet in env.result.snippets:
        if snippet.type == "text/html" and snippet.has_tag("player"):
            snippet.media["autoplay"] = "autoStart=true"


RULE = {
    "id": "rutube.ru",
    "match": [r"^https?://(?:www\.)?rutube\.ru"],
    "mixins_after": ["*", rutube_autoplay],
}
