#!/usr/bin/env python3
#
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

__version__ = '0.1.0'

import getpass
import logging
import sys
import uvicorn

from .config import ConfigError, read_config
from .settings import Settings, setup_logging

logger = logging.getLogger(__name__)


def main():
    from .web import create_app

    settings = Settings(_cli_parse_args=True)
    setup_logging(settings)

    try:
        config = read_config(settings.CONFIG_FILE)
    except ConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        cause = e.__cause__
        while cause is not None:
            print(f"caused by: {cause}", file=sys.stderr)
            cause = cause.__cause__
        return 1

    host = settings.LISTEN_ADDRESS if settings.LISTEN_ADDRESS is not None else str(config.listen.ip)
    port = settings.LISTEN_PORT if settings.LISTEN_PORT is not None else config.listen.port
    logger.info(f"Listening on [{host}]:{port}")
    uvicorn.run(create_app(config, settings), host=host, port=port, proxy_headers=True, log_config=None)
    return 0


def hash_password():
    """Print an Argon2 hash for the `hash` field of a [users.<name>] table.

    The password is read from stdin so that it does not end up in the shell
    history.
    """
    from .auth import gen_hash

    if sys.stdin.isatty():
        password = getpass.getpass('Password: ')
        if password != getpass.getpass('Repeat password: '):
            print('ERROR: passwords do not match', file=sys.stderr)
            return 1
    else:
        password = sys.stdin.readline().rstrip('\r\n')

    if not password:
        print('ERROR: empty password', file=sys.stderr)
        return 1
    print(gen_hash(password))
    return 0


if __name__ == '__main__':
    sys.exit(main())
