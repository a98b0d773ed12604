"""Capabilities shared by DNS zones from different providers."""

from typing import Protocol

import pulumi


class DnsZone(Protocol):
    """A DNS zone whose name servers another zone can delegate to."""

    def get_domain(self) -> str: ...

    def get_nameservers(self) -> pulumi.Output[list[str]]: ...
