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

from types import MappingProxyType
from typing import Mapping, Optional, Tuple
from ipaddress import IPv6Address
from pydantic import BaseModel, ConfigDict, Field, PositiveInt, IPvAnyAddress, ValidationError, field_validator
from pwdlib.hashers.argon2 import Argon2Hasher
import logging
import re
import tomllib

logger = logging.getLogger(__name__)

# PHC string format: $argon2id$v=19$m=65536,t=3,p=1$<salt>$<hash>
ARGON2_PHC_RE = re.compile(r'^\$argon2(id|i|d)\$v=\d+\$m=\d+,t=\d+,p=\d+\$[A-Za-z0-9+/]+\$[A-Za-z0-9+/]+$')


class ConfigError(Exception):
    pass


class FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra='forbid')


class Listen(FrozenModel):
    ip: IPvAnyAddress = IPv6Address('::1')
    port: int = Field(default=9841, ge=0, le=65535)


class SpecialUpdateProgram(FrozenModel):
    stdin: str


class UpdateProgram(FrozenModel):
    bin: str = Field(min_length=1)
    args: Tuple[str, ...] = ()
    initial_stdin: str = ''
    stdin_per_zone_update: str = ''
    final_stdin: str = ''
    ipv4: SpecialUpdateProgram
    ipv6: SpecialUpdateProgram


class Domain(FrozenModel):
    ttl: PositiveInt = 60
    ipv6prefixlen: int = Field(default=128, ge=0, le=128)
    ipv6suffix: IPv6Address = IPv6Address('::')


class User(FrozenModel):
    hash: str
    domains: Mapping[str, Domain] = Field(default_factory=dict, validate_default=True)

    @field_validator('hash')
    @classmethod
    def validate_hash(cls, value: str) -> str:
        if not Argon2Hasher.identify(value):
            raise ValueError('password hash is not an Argon2id hash')
        if not ARGON2_PHC_RE.match(value):
            raise ValueError('password hash is not a valid Argon2 PHC string')
        return value

    @field_validator('domains')
    @classmethod
    def validate_domains(cls, value: Mapping[str, Domain]) -> Mapping[str, Domain]:
        for name in value:
            if not name.strip('.').strip():
                raise ValueError(f"invalid domain name {name!r}")
        return MappingProxyType(value)


class Config(FrozenModel):
    listen: Listen = Listen()
    update_program: UpdateProgram
    users: Mapping[str, User] = Field(default_factory=dict, validate_default=True)

    @field_validator('users')
    @classmethod
    def freeze_users(cls, value: Mapping[str, User]) -> Mapping[str, User]:
        return MappingProxyType(value)

    def get_user(self, username: str) -> Optional[User]:
        return self.users.get(username)


def parse_config(data: dict) -> Config:
    return Config.model_validate(data)


def read_config(filename: str) -> Config:
    """Read and validate the TOML config file.

    The result is built once at startup and shared read-only by all requests.
    Every failure is reported as ConfigError with the original exception
    chained as its cause.
    """
    try:
        with open(filename, 'rb') as fd:
            data = tomllib.load(fd)
    except OSError as e:
        raise ConfigError(f"Cannot read config file `{filename}`") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Cannot parse config file `{filename}`") from e

    try:
        config = parse_config(data)
    except ValidationError as e:
        raise ConfigError(f"Cannot parse config file `{filename}`") from e

    logger.info(f"Loaded config file {filename} with {len(config.users)} users")
    for username, user in config.users.items():
        logger.debug(f"User {username}: domains {', '.join(user.domains) or '(none)'}")
    return config
