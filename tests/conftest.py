"""
Global pytest configuration and fixtures for DynDNSd tests.
"""
import os
import sys
import pytest

# Add the src directory to Python path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from dyndnsd.auth import gen_hash
from dyndnsd.config import parse_config


ALICE_PASSWORD = '123456'
BOB_PASSWORD = 'hunter2'

IPV4_TEMPLATE = "update delete {domain}. IN A\nupdate add {domain}. {ttl} IN A {ipv4}\n"
IPV6_TEMPLATE = "update delete {domain}. IN AAAA\nupdate add {domain}. {ttl} IN AAAA {ipv6}\n"


@pytest.fixture(scope='session')
def alice_hash():
    return gen_hash(ALICE_PASSWORD)


@pytest.fixture(scope='session')
def bob_hash():
    return gen_hash(BOB_PASSWORD)


@pytest.fixture
def stdin_file(tmp_path):
    """File the recording update program writes its stdin to."""
    return tmp_path / 'stdin.txt'


def _shell_program(script, **overrides):
    program = {
        'bin': '/bin/sh',
        'args': ['-c', script],
        'initial_stdin': 'server ::1\n',
        'stdin_per_zone_update': 'send\n',
        'final_stdin': 'quit\n',
        'ipv4': {'stdin': IPV4_TEMPLATE},
        'ipv6': {'stdin': IPV6_TEMPLATE},
    }
    program.update(overrides)
    return program


@pytest.fixture
def shell_program():
    """Factory for update program tables running a /bin/sh script."""
    return _shell_program


@pytest.fixture
def recording_program(stdin_file):
    return _shell_program(f'cat > "{stdin_file}"')


@pytest.fixture
def make_config(alice_hash, bob_hash, recording_program):
    """Build a Config with alice (two domains) and bob (no domains).

    Keyword arguments replace the update_program table or single users.
    """
    def _make_config(update_program=None, **users):
        data = {
            'update_program': update_program if update_program is not None else recording_program,
            'users': {
                'alice': {
                    'hash': alice_hash,
                    'domains': {
                        'example.org': {'ttl': 60, 'ipv6prefixlen': 48, 'ipv6suffix': '0:0:0:1::5'},
                        'test.example.org': {'ttl': 300, 'ipv6prefixlen': 48, 'ipv6suffix': '0:0:0:1::6'},
                    },
                },
                'bob': {
                    'hash': bob_hash,
                    'domains': {},
                },
            },
        }
        data['users'].update(users)
        return parse_config(data)
    return _make_config


@pytest.fixture
def config(make_config):
    return make_config()
