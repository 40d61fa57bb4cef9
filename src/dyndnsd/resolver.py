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

from typing import List, Optional
from ipaddress import IPv4Address, IPv6Address
from pydantic import BaseModel, ConfigDict
import logging

from .addr import Ipv6LanPrefix, splice_ipv6_addrs
from .config import User

logger = logging.getLogger(__name__)


class ResolvedUpdate(BaseModel):
    model_config = ConfigDict(frozen=True)

    domain: str
    ttl: int
    ipv4: Optional[IPv4Address] = None
    ipv6: Optional[IPv6Address] = None

    def is_empty(self) -> bool:
        return self.ipv4 is None and self.ipv6 is None


def resolve_updates(user: User,
                    ipv4: Optional[IPv4Address],
                    ipv6: Optional[IPv6Address],
                    lan_prefix: Optional[Ipv6LanPrefix] = None) -> List[ResolvedUpdate]:
    """Compute the records to publish for every domain of `user`.

    Domains are processed in the order they were declared in the config file,
    which is also the order of the command blocks sent to the update program.
    When no explicit IPv6 address is given, the network address of
    `lan_prefix` is used as the IPv6 source, but only for domains that do
    not take more bits from the request than the LAN prefix provides.
    """
    updates = []
    for name, domain in user.domains.items():
        new_ipv6 = None
        if domain.ipv6prefixlen == 0:
            if ipv6 is not None or lan_prefix is not None:
                logger.info(f"IPv6 prefix length for domain {name} is zero, ignoring update to IPv6 address")
        elif ipv6 is not None:
            new_ipv6 = splice_ipv6_addrs(ipv6, domain.ipv6suffix, domain.ipv6prefixlen)
        elif lan_prefix is not None:
            if domain.ipv6prefixlen > lan_prefix.prefix_length:
                logger.warning(f"IPv6 prefix length {domain.ipv6prefixlen} for domain {name} is longer than "
                               f"the LAN prefix {lan_prefix}, ignoring update to IPv6 address")
            else:
                new_ipv6 = splice_ipv6_addrs(lan_prefix.prefix, domain.ipv6suffix, domain.ipv6prefixlen)

        update = ResolvedUpdate(domain=name, ttl=domain.ttl, ipv4=ipv4, ipv6=new_ipv6)
        if update.is_empty():
            logger.debug(f"Nothing to update for domain {name}")
            continue
        logger.debug(f"Resolved update for domain {name}: ipv4={update.ipv4} ipv6={update.ipv6}")
        updates.append(update)
    return updates
