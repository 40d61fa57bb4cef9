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

from typing import Iterable, Optional, Union
from enum import StrEnum
from ipaddress import IPv4Address, IPv6Address
import asyncio
import contextlib
import logging
import tempfile

from .config import UpdateProgram
from .resolver import ResolvedUpdate

logger = logging.getLogger(__name__)

# Only the head of the update program diagnostics is kept
MAX_STDERR_BYTES = 64 * 1024


class DriverState(StrEnum):
    STARTING = 'starting'
    INITIAL = 'initial'
    PER_ZONE = 'per_zone'
    FINISHING = 'finishing'
    CLOSED = 'closed'
    FAILED = 'failed'


class UpdateProgramError(Exception):
    """Base of all failures of an update program run.

    `diagnostic` is meant for the server log, never for the HTTP client.
    """

    def __init__(self, diagnostic: str):
        super().__init__(diagnostic)
        self.diagnostic = diagnostic


class SpawnFailed(UpdateProgramError):
    pass


class WriteFailed(UpdateProgramError):
    pass


class NonZeroExit(UpdateProgramError):
    def __init__(self, returncode: int, stderr: str):
        super().__init__(f"Update program exited with status {returncode}: {stderr.strip()}")
        self.returncode = returncode
        self.stderr = stderr


class UpdateTimeout(UpdateProgramError):
    pass


def render_template(template: str, domain: str, ttl: int, placeholder: str,
                    address: Union[IPv4Address, IPv6Address]) -> str:
    return (template
            .replace('{domain}', domain)
            .replace('{ttl}', str(ttl))
            .replace(placeholder, str(address)))


class UpdateProgramInvocation:
    """One run of the update program, scripted over its stdin.

    States advance STARTING -> INITIAL -> PER_ZONE -> FINISHING -> CLOSED.
    Any spawn, write or exit failure moves to FAILED and raises the matching
    UpdateProgramError. Use as an async context manager: leaving the block
    always closes stdin and reaps the child, killing it if it still runs.
    """

    def __init__(self, program: UpdateProgram):
        self.program = program
        self.state = DriverState.STARTING
        self.process: Optional[asyncio.subprocess.Process] = None
        self.returncode: Optional[int] = None
        self.stderr = ''
        self._stderr_file = None

    async def __aenter__(self) -> 'UpdateProgramInvocation':
        await self.spawn()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.cleanup()
        return False

    def _expect(self, *states: DriverState):
        if self.state not in states:
            raise RuntimeError(f"Update program invocation in state {self.state}, expected {', '.join(states)}")

    async def spawn(self):
        self._expect(DriverState.STARTING)
        logger.debug(f"Spawning update program {self.program.bin} {' '.join(self.program.args)}")
        # stderr goes to a file, not a pipe: a helper the program leaves running
        # in the background must not delay noticing that the program exited
        self._stderr_file = tempfile.TemporaryFile()
        try:
            self.process = await asyncio.create_subprocess_exec(
                self.program.bin, *self.program.args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=self._stderr_file)
        except OSError as e:
            self.state = DriverState.FAILED
            self._close_stderr_file()
            raise SpawnFailed(f"Cannot spawn update program {self.program.bin}: {e}") from e

        self.state = DriverState.INITIAL

    async def _write(self, data: str):
        if not data:
            return
        logger.debug(f"Update program stdin: {data!r}")
        try:
            self.process.stdin.write(data.encode())
            await self.process.stdin.drain()
        except OSError as e:
            self.state = DriverState.FAILED
            raise WriteFailed(f"Cannot write to stdin of update program {self.program.bin}: {e}") from e

    async def write_initial(self):
        self._expect(DriverState.INITIAL)
        await self._write(self.program.initial_stdin)
        self.state = DriverState.PER_ZONE

    async def write_zone(self, update: ResolvedUpdate):
        self._expect(DriverState.PER_ZONE)
        if update.ipv4 is not None:
            await self._write(render_template(self.program.ipv4.stdin, update.domain, update.ttl, '{ipv4}', update.ipv4))
        if update.ipv6 is not None:
            await self._write(render_template(self.program.ipv6.stdin, update.domain, update.ttl, '{ipv6}', update.ipv6))
        await self._write(self.program.stdin_per_zone_update)

    async def finish(self) -> int:
        self._expect(DriverState.PER_ZONE)
        self.state = DriverState.FINISHING
        await self._write(self.program.final_stdin)
        try:
            self.process.stdin.close()
            await self.process.stdin.wait_closed()
        except OSError as e:
            self.state = DriverState.FAILED
            raise WriteFailed(f"Cannot close stdin of update program {self.program.bin}: {e}") from e

        self.returncode = await self.process.wait()
        self.stderr = self._read_stderr()
        if self.returncode != 0:
            self.state = DriverState.FAILED
            raise NonZeroExit(self.returncode, self.stderr)

        if self.stderr:
            logger.debug(f"Update program stderr: {self.stderr.strip()}")
        self.state = DriverState.CLOSED
        return self.returncode

    async def cleanup(self):
        if self.process is None:
            return

        if self.process.returncode is None:
            self.process.stdin.close()
            with contextlib.suppress(ProcessLookupError):
                self.process.kill()
            logger.warning(f"Killed update program {self.program.bin} in state {self.state}")
            await self.process.wait()

        self._close_stderr_file()

    def _read_stderr(self) -> str:
        self._stderr_file.seek(0)
        return self._stderr_file.read(MAX_STDERR_BYTES).decode(errors='replace')

    def _close_stderr_file(self):
        if self._stderr_file is not None:
            self._stderr_file.close()
            self._stderr_file = None


async def run_update_program(program: UpdateProgram, updates: Iterable[ResolvedUpdate], timeout: float) -> int:
    """Drive one update program run through all states for `updates`.

    Returns the (zero) exit status, raises UpdateProgramError on failure.
    No retries are attempted here.
    """
    async def drive() -> int:
        async with UpdateProgramInvocation(program) as invocation:
            await invocation.write_initial()
            for update in updates:
                await invocation.write_zone(update)
            return await invocation.finish()

    try:
        return await asyncio.wait_for(drive(), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise UpdateTimeout(f"Update program {program.bin} did not finish within {timeout} seconds") from e
