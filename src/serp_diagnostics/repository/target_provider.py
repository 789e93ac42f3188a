"""
Static implementation of the TargetProvider interface.
"""

from typing import List, Optional, Sequence

from serp_diagnostics.contracts import TargetProvider
from serp_diagnostics.domain import TargetConfig
from serp_diagnostics.engines import DEFAULT_TARGETS


class StaticTargetProvider(TargetProvider):
    """
    Serves a fixed list of monitored engines, the built-in defaults unless given.
    """

    def __init__(self, targets: Optional[Sequence[TargetConfig]] = None) -> None:
        targets = DEFAULT_TARGETS if targets is None else targets
        engine_ids = [t.engine_id for t in targets]
        if len(set(engine_ids)) != len(engine_ids):
            raise ValueError("targets must have unique engine ids.")
        self._targets: List[TargetConfig] = list(targets)

    async def list_targets(self) -> List[TargetConfig]:
        return list(self._targets)
