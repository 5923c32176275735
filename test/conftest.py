"""
Copyright 2017-2019 Government of Canada - Public Services and Procurement Canada - buyandsell.gc.ca

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at

http://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License.
"""


import asyncio
import logging

import pytest

from von_zkp.cache import Caches
from von_zkp.ledger import MemoryLedger


logging.basicConfig(level=logging.WARNING, format='%(levelname)-8s | %(name)-12s | %(message)s')
logging.getLogger('test.conftest').setLevel(logging.INFO)
logging.getLogger('asyncio').setLevel(logging.WARNING)
logging.getLogger('von_zkp').setLevel(logging.WARNING)


@pytest.fixture(scope="session")
def event_loop():
    loop = asyncio.new_event_loop()
    yield loop

    loop.close()


@pytest.fixture(autouse=True)
def clear_caches():
    Caches.clear()
    yield
    Caches.clear()


@pytest.fixture
def ledger():
    return MemoryLedger('test')


@pytest.fixture
def seed_issuer():
    return 'Issuer00000000000000000000000000'


@pytest.fixture
def seed_holder():
    return 'Holder00000000000000000000000000'


@pytest.fixture
def seed_verifier():
    return 'Verifier000000000000000000000000'


@pytest.fixture
def dir_tails(tmp_path):
    logger = logging.getLogger(__name__)

    rv = {
        'issuer': str(tmp_path.joinpath('issuer-tails')),
        'holder': str(tmp_path.joinpath('holder-tails'))
    }
    logger.debug('dir_tails: %s', rv)
    return rv
