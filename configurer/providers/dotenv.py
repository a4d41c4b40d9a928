"""Provider reading and writing ``.env`` files."""

from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from dotenv import set_key

from ..environ import EnvStore
from ..exceptions import FailedToError, InvalidError, RequiredError
from ..formats import parse_content
from ..options import KeyFunc, WriteFunc
from ..provider import Provider, format_value

NAME = "dotenv"


class DotEnv(Provider):
    """
    Load one or more ``.env`` files; a key in a later file wins.

    Writing needs exactly one destination: the single configured file, or a
    ``with_target`` option.
    """

    def __init__(
        self,
        *file_paths: Union[str, Path],
        override: bool = False,
        raw_value: bool = False,
        env: Optional[EnvStore] = None,
    ):
        super().__init__(NAME, override=override, raw_value=raw_value, env=env)

        if not file_paths:
            raise RequiredError("file_paths")

        self.file_paths: List[Path] = [Path(path) for path in file_paths]

    def read(self) -> Dict[str, str]:
        values: Dict[str, str] = {}
        for path in self.file_paths:
            try:
                content = path.read_text()
            except OSError as e:
                raise FailedToError("read path", e) from e
            values.update(parse_content("env", content))
        return values

    def load(self, *key_funcs: KeyFunc) -> Dict[str, str]:
        values = self.read()
        self.logger.debug("Read env files", files=[str(p) for p in self.file_paths])
        return self.export_all(values, key_funcs)

    def write(self, values: Mapping[str, Any], *write_funcs: WriteFunc) -> None:
        if values is None:
            raise RequiredError("values")

        options = self.write_options(write_funcs)
        if options.target:
            path = Path(options.target)
        elif len(self.file_paths) > 1:
            raise InvalidError("file_paths", "only one file can be written to")
        else:
            path = self.file_paths[0]

        try:
            path.write_text("")
            for key in sorted(values):
                set_key(path, key, format_value(values[key]), quote_mode="auto")
        except OSError as e:
            raise FailedToError("write path", e) from e

        self.logger.info("Wrote env file", path=str(path), keys=len(values))
