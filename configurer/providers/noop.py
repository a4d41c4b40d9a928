"""Provider re-exporting the current environment, only applying key transforms."""

from typing import Dict, Optional

from ..environ import EnvStore
from ..options import KeyFunc
from ..provider import Provider

NAME = "noop"


class NoOp(Provider):
    def __init__(self, override: bool = False, env: Optional[EnvStore] = None):
        super().__init__(NAME, override=override, env=env)

    def load(self, *key_funcs: KeyFunc) -> Dict[str, str]:
        return self.export_all(self.env.as_dict(), key_funcs)
