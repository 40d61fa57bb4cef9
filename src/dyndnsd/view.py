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

from typing import List, Optional, Tuple
from enum import StrEnum
from ipaddress import IPv4Address, IPv6Address
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field, field_validator
import ipaddress
import logging

from .addr import Ipv6LanPrefix, Ipv6LanPrefixError
from .auth import verify_user
from .config import Config
from .process import UpdateProgramError, run_update_program
from .resolver import ResolvedUpdate, resolve_updates
from . import metrics

logger = logging.getLogger(__name__)


class UpdateStatus(StrEnum):
    SUCCESS = 'success'
    UNAUTHORIZED = 'unauthorized'
    BAD_REQUEST = 'bad_request'
    UPDATE_FAILED = 'update_failed'


class UpdateOutcome(BaseModel):
    status: UpdateStatus
    detail: str


class UpdateRequest(BaseModel):
    user: str
    password: str = Field(repr=False)
    ipv4: Optional[str] = None
    ipv6: Optional[str] = None
    ipv6lanprefix: Optional[str] = None
    # Accepted for client compatibility, not used for the update itself
    domain: Optional[str] = None
    dualstack: Optional[str] = None

    @field_validator('ipv4', 'ipv6', 'ipv6lanprefix', 'domain', 'dualstack', mode='before')
    @classmethod
    def empty_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


def parse_addresses(request: UpdateRequest) -> Tuple[Optional[IPv4Address], Optional[IPv6Address], Optional[Ipv6LanPrefix]]:
    ipv4 = ipv6 = lan_prefix = None
    if request.ipv4 is not None:
        try:
            ipv4 = IPv4Address(request.ipv4.strip())
        except ipaddress.AddressValueError as e:
            raise ValueError(f"Invalid IPv4 address {request.ipv4}: {e}") from e
    if request.ipv6 is not None:
        try:
            ipv6 = IPv6Address(request.ipv6.strip())
        except ipaddress.AddressValueError as e:
            raise ValueError(f"Invalid IPv6 address {request.ipv6}: {e}") from e
    if request.ipv6lanprefix is not None:
        try:
            lan_prefix = Ipv6LanPrefix.parse(request.ipv6lanprefix.strip())
        except Ipv6LanPrefixError as e:
            raise ValueError(str(e)) from e
    return ipv4, ipv6, lan_prefix


def _outcome(status: UpdateStatus, detail: str) -> UpdateOutcome:
    metrics.ddns_updates_total.labels(status=status.value).inc()
    return UpdateOutcome(status=status, detail=detail)


def _count_records(updates: List[ResolvedUpdate]):
    for update in updates:
        if update.ipv4 is not None:
            metrics.zone_updates_total.labels(record_type='A').inc()
        if update.ipv6 is not None:
            metrics.zone_updates_total.labels(record_type='AAAA').inc()


class Orchestrator:
    """Handles one DDNS update request end to end.

    Holds nothing but the read-only config, so a single instance serves all
    concurrent requests. Every request that passes authentication and has
    something to publish gets its own update program process.
    """

    def __init__(self, config: Config, timeout: float):
        self.config = config
        self.timeout = timeout

    async def handle(self, request: UpdateRequest) -> UpdateOutcome:
        logger.info(f"DYNDNS update: user {request.user} pass <redacted> domain {request.domain} "
                    f"ipv4 {request.ipv4} ipv6 {request.ipv6} dualstack {request.dualstack} "
                    f"ipv6lanprefix {request.ipv6lanprefix}")

        try:
            ipv4, ipv6, lan_prefix = parse_addresses(request)
        except ValueError as e:
            logger.info(f"Bad request: {e}")
            return _outcome(UpdateStatus.BAD_REQUEST, str(e))

        if ipv4 is None and ipv6 is None and lan_prefix is None:
            logger.info("Bad request: no address given")
            return _outcome(UpdateStatus.BAD_REQUEST, "No IPv4 or IPv6 address given")

        user = await run_in_threadpool(verify_user, self.config, request.user, request.password)
        if user is None:
            return _outcome(UpdateStatus.UNAUTHORIZED, "Not authorized")
        logger.info(f"Authentication of user {request.user} successful")

        updates = resolve_updates(user, ipv4, ipv6, lan_prefix)
        if not updates:
            logger.info(f"Nothing to update for user {request.user}")
            return _outcome(UpdateStatus.SUCCESS, "ok")

        try:
            with metrics.update_program_duration.time():
                await run_update_program(self.config.update_program, updates, self.timeout)
        except UpdateProgramError as e:
            logger.error(f"Update for user {request.user} failed ({type(e).__name__}): {e.diagnostic}")
            return _outcome(UpdateStatus.UPDATE_FAILED, "ERROR")

        _count_records(updates)
        metrics.last_update_timestamp.set_to_current_time()
        logger.info(f"Updated {len(updates)} domains for user {request.user}")
        return _outcome(UpdateStatus.SUCCESS, "ok")
