"""Provider loading values from text, typically piped through stdin."""

from typing import Dict, Optional

from ..environ import EnvStore
from ..exceptions import InvalidError
from ..formats import PARSE_FORMATS, parse_content
from ..options import KeyFunc
from ..provider import Provider

NAME = "text"


class Text(Provider):
    """Parse ``content`` written in ``content_format`` and export it."""

    def __init__(
        self,
        content_format: str,
        content: str,
        override: bool = False,
        raw_value: bool = False,
        env: Optional[EnvStore] = None,
    ):
        super().__init__(NAME, override=override, raw_value=raw_value, env=env)

        content_format = (content_format or "").lower().lstrip(".")
        if content_format not in PARSE_FORMATS:
            raise InvalidError("format", f"allowed: {', '.join(PARSE_FORMATS)}")

        self.content_format = content_format
        self.content = content

    def load(self, *key_funcs: KeyFunc) -> Dict[str, str]:
        values = parse_content(self.content_format, self.content)
        return self.export_all(values, key_funcs)
