"""Transport interfaces."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from dbusctl.core.model import WireValue


class Transport(Protocol):
    def send_call(
        self,
        destination: str | None,
        path: str,
        interface: str | None,
        member: str,
        args: Sequence[WireValue],
        *,
        timeout_s: float,
    ) -> list[WireValue]:
        """Send a method call and return the reply's values."""

    def close(self) -> None:
        """Release the underlying connection, if any."""
