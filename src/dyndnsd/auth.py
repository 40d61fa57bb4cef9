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
from pwdlib import PasswordHash
from pwdlib.hashers.argon2 import Argon2Hasher
import logging
import secrets

from .config import Config, User

logger = logging.getLogger(__name__)

password_hash = PasswordHash((Argon2Hasher(),))

# Unknown users are verified against this hash so that the response time
# does not tell whether the username exists.
DUMMY_HASH = password_hash.hash(secrets.token_urlsafe(16))


def gen_hash(password: str) -> str:
    return password_hash.hash(password)


def verify_password(password: str, hash: str) -> bool:
    return password_hash.verify(password, hash)


def verify_user(config: Config, username: str, password: str) -> Optional[User]:
    user = config.get_user(username)
    if user is None:
        verify_password(password, DUMMY_HASH)
        logger.warning(f"User {username} does not exist")
        return None

    if not verify_password(password, user.hash):
        logger.warning(f"Wrong password for user {username}")
        return None

    logger.debug(f"Authentication of user {username} successful")
    return user
