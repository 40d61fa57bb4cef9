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

from typing import Optional
from enum import IntEnum, StrEnum
from pydantic import Field
from pydantic_settings import BaseSettings
import logging
import sys


class LogLevel(IntEnum):
    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR
    CRITICAL = logging.CRITICAL


class LogStyle(StrEnum):
    DEFAULT = 'DEFAULT'
    SYSTEMD = 'SYSTEMD'


class Settings(BaseSettings):
    CONFIG_FILE: str = 'config.toml'
    ROOT_PATH: str = ''
    LOG_LEVEL: LogLevel = LogLevel.INFO
    LOG_STYLE: LogStyle = LogStyle.DEFAULT

    # Upper bound for spawn, stdin writes and exit wait of one update program run
    UPDATE_TIMEOUT: float = Field(default=30.0, gt=0)

    # Overrides for the [listen] table of the config file
    LISTEN_ADDRESS: Optional[str] = None
    LISTEN_PORT: Optional[int] = None


class SystemdFormatter(logging.Formatter):
    """Prefix every output line with its syslog priority so that journald
    picks up the level of multi-line messages correctly."""

    PRIORITIES = {
        logging.CRITICAL: 2,
        logging.ERROR: 3,
        logging.WARNING: 4,
        logging.INFO: 6,
        logging.DEBUG: 7,
    }

    def priority(self, levelno: int) -> int:
        for level, prio in self.PRIORITIES.items():
            if levelno >= level:
                return prio
        return 7

    def format(self, record: logging.LogRecord) -> str:
        prio = self.priority(record.levelno)
        return '\n'.join(f"<{prio}>{record.name}: {line}"
                         for line in super().format(record).splitlines())


def setup_logging(settings: Settings):
    if settings.LOG_STYLE == LogStyle.SYSTEMD:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(SystemdFormatter('%(message)s'))
        logging.basicConfig(level=int(settings.LOG_LEVEL), handlers=[handler], force=True)
    else:
        logging.basicConfig(format='%(levelname)s:%(name)s:%(message)s', level=int(settings.LOG_LEVEL), force=True)
