"""Mimic joint wiring.

Mimic references form a second graph on top of the link/joint tree: each
mimic joint points at exactly one driver. The resolver indexes every joint
once, keeps a driver -> dependents map over those indices and pushes value
changes down it.
"""

import logging
from typing import Dict, List, Sequence, Tuple

from ..errors import ParseError
from .nodes import Joint, MimicJoint

logger = logging.getLogger(__name__)


class MimicResolver:
    """Index-based driver -> dependents map for a fixed set of joints.

    Raises:
        ParseError: if a mimic joint names an unknown driver or the mimic
            references contain a cycle (self-references included).
    """

    def __init__(self, joints: Sequence[Joint]):
        self._joints: List[Joint] = list(joints)
        self._index: Dict[str, int] = {joint.name: i for i, joint in enumerate(self._joints)}
        self._driver: Dict[int, int] = {}
        self._dependents: Dict[int, List[int]] = {}

        for i, joint in enumerate(self._joints):
            if not isinstance(joint, MimicJoint):
                continue
            driver = self._index.get(joint.driver)
            if driver is None:
                raise ParseError(
                    f"Mimic joint '{joint.name}' references undeclared joint '{joint.driver}'"
                )
            self._driver[i] = driver
            self._dependents.setdefault(driver, []).append(i)

        self._check_acyclic()
        if self._driver:
            logger.debug("Resolved %d mimic joint(s)", len(self._driver))

    def _check_acyclic(self) -> None:
        # Every joint has at most one driver, so reaching a joint twice from
        # the same start can only happen through a cycle.
        for start in range(len(self._joints)):
            visited = set()
            stack = [start]
            while stack:
                i = stack.pop()
                if i in visited:
                    raise ParseError(
                        f"Detected a cycle of mimic joints through '{self._joints[i].name}'"
                    )
                visited.add(i)
                stack.extend(self._dependents.get(i, ()))

    def __len__(self) -> int:
        return len(self._driver)

    def driver_of(self, name: str) -> str:
        """Name of the joint driving mimic joint ``name``."""
        return self._joints[self._driver[self._index[name]]].name

    def dependents_of(self, name: str) -> Tuple[str, ...]:
        """Names of the mimic joints directly driven by ``name``."""
        return tuple(self._joints[i].name for i in self._dependents.get(self._index[name], ()))

    def propagate(self, name: str) -> None:
        """Recompute every mimic joint downstream of joint ``name``."""
        stack = list(self._dependents.get(self._index[name], ()))
        while stack:
            i = stack.pop()
            joint = self._joints[i]
            joint.value = joint.follow(self._joints[self._driver[i]].value)
            stack.extend(self._dependents.get(i, ()))

    def sync(self) -> None:
        """Recompute all mimic joints from their (ultimate) drivers."""
        for i in self._dependents:
            if i not in self._driver:
                self.propagate(self._joints[i].name)
