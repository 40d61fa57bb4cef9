# DynDNSd
# (C) 2024-2025 Luflosi (dyndnsd@luflosi.de)
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, version 3.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <http://www.gnu.org/licenses/>.

from typing import NamedTuple
from ipaddress import IPv6Address
import ipaddress

IPV6_BITS = 128
IPV6_MAX = (1 << IPV6_BITS) - 1


def splice_ipv6_addrs(address: IPv6Address, suffix: IPv6Address, prefixlen: int) -> IPv6Address:
    """Combine the first `prefixlen` bits of `address` with the last
    128 - `prefixlen` bits of `suffix`.

    prefixlen 128 yields `address` unchanged, prefixlen 0 yields `suffix`.
    Callers must skip the AAAA update altogether for domains configured with
    prefixlen 0.
    """
    if not 0 <= prefixlen <= IPV6_BITS:
        raise ValueError(f"IPv6 prefix length out of range: {prefixlen}")

    suffix_mask = (1 << (IPV6_BITS - prefixlen)) - 1
    prefix_mask = IPV6_MAX & ~suffix_mask
    return IPv6Address((int(address) & prefix_mask) | (int(suffix) & suffix_mask))


class Ipv6LanPrefixError(ValueError):
    pass


class NoSlash(Ipv6LanPrefixError):
    def __init__(self, value: str):
        super().__init__(f"Could not parse ipv6lanprefix because it does not contain a / to separate the address from the prefix: {value}")


class InvalidAddress(Ipv6LanPrefixError):
    def __init__(self, prefix: str):
        super().__init__(f"Could not parse ipv6lanprefix because the prefix is not a valid IPv6 address: {prefix}")


class PrefixLengthNotANumber(Ipv6LanPrefixError):
    def __init__(self, prefix_length: str):
        super().__init__(f"Could not parse ipv6lanprefix because the prefix length is not a valid number: {prefix_length}")


class InvalidPrefixLength(Ipv6LanPrefixError):
    def __init__(self, prefix_length: int):
        super().__init__(f"Could not parse ipv6lanprefix because the prefix length is not valid: {prefix_length}")


class Ipv6LanPrefix(NamedTuple):
    """LAN prefix as sent by routers, e.g. FRITZ!Box `<ip6lanprefix>`."""
    prefix: IPv6Address
    prefix_length: int

    @classmethod
    def parse(cls, value: str) -> 'Ipv6LanPrefix':
        prefix_str, slash, prefix_length_str = value.partition('/')
        if not slash:
            raise NoSlash(value)
        try:
            prefix = IPv6Address(prefix_str)
        except ipaddress.AddressValueError as e:
            raise InvalidAddress(prefix_str) from e
        if not (prefix_length_str.isascii() and prefix_length_str.isdigit()):
            raise PrefixLengthNotANumber(prefix_length_str)
        prefix_length = int(prefix_length_str)
        if prefix_length > IPV6_BITS:
            raise InvalidPrefixLength(prefix_length)
        return cls(prefix, prefix_length)

    def __str__(self):
        return f"{self.prefix}/{self.prefix_length}"
