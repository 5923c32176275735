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


from os import makedirs
from os.path import basename, isfile, join

import pytest

from von_zkp.error import AbsentTails, BadIdentifier
from von_zkp.frill import Ink
from von_zkp.tails import Tails
from von_zkp.util import cred_def_id, rev_reg_id


DID = 'LjgpST2rjsoxYegQDRm7EL'
TAILS_HASH = [
    'Q4zqM7aXqm7gDQkUVLng9hQ4zqM7aXqm7gDQkUVLng9h',
    'LjgpST2rjsoxYegQDRm7ELLjgpST2rjsoxYegQDRm7EL'
]


def _write_tails(base_dir: str, cd_id: str, tails_hash: str) -> str:
    directory = join(base_dir, cd_id)
    makedirs(directory, exist_ok=True)
    rv = join(directory, tails_hash)
    with open(rv, 'wb') as fh_tails:
        fh_tails.write(b'\x00\x02' + bytes(64))
    return rv


@pytest.mark.asyncio
async def test_tails_links(tmp_path):
    print(Ink.YELLOW('\n\n== Testing Tails File Association =='))

    base_dir = str(tmp_path.joinpath('issuer'))
    cd_id = cred_def_id(DID, 20)

    assert Tails.next_tag(base_dir, cd_id) == ('0', 64)
    with pytest.raises(AbsentTails):
        Tails.current_rev_reg_id(base_dir, cd_id)
    print('\n\n== 1 == Empty tails directory starts at tag 0')

    for (tag, tails_hash) in enumerate(TAILS_HASH):
        _write_tails(base_dir, cd_id, tails_hash)
        Tails.associate(base_dir, rev_reg_id(cd_id, tag), tails_hash)
        Tails.associate(base_dir, rev_reg_id(cd_id, tag), tails_hash)  # idempotent

    assert Tails.next_tag(base_dir, cd_id) == ('2', 256)
    assert Tails.current_rev_reg_id(base_dir, cd_id) == rev_reg_id(cd_id, 1)
    assert {basename(link) for link in Tails.links(base_dir)} == {rev_reg_id(cd_id, t) for t in range(2)}
    assert Tails.links(base_dir, 'Q4zqM7aXqm7gDQkUVLng9h') == set()
    assert Tails.linked(base_dir, rev_reg_id(cd_id, 0)) == join(base_dir, cd_id, TAILS_HASH[0])
    assert Tails.linked(base_dir, rev_reg_id(cd_id, 5)) is None
    print('\n\n== 2 == Tails files link to rev reg ids, next tag and current rev reg id track them')

    tails = Tails(base_dir, cd_id)
    assert tails.rr_id == rev_reg_id(cd_id, 1)
    assert tails.path == join(base_dir, cd_id, TAILS_HASH[1])
    tails = Tails(base_dir, cd_id, '0')
    assert tails.rr_id == rev_reg_id(cd_id, 0)
    with pytest.raises(AbsentTails):
        Tails(base_dir, cd_id, '7')
    print('\n\n== 3 == Tails objects resolve by tag, default most recent')

    with pytest.raises(BadIdentifier):
        Tails.associate(base_dir, cd_id, TAILS_HASH[0])
    with pytest.raises(BadIdentifier):
        Tails.associate(base_dir, rev_reg_id(cd_id, 3), 'not-a-hash')
    with pytest.raises(BadIdentifier):
        Tails.next_tag(base_dir, 'not-a-cred-def-id')
    print('\n\n== 4 == Bad identifiers and hashes raise BadIdentifier')


@pytest.mark.asyncio
async def test_tails_fetch(tmp_path):
    print(Ink.YELLOW('\n\n== Testing Tails File Fetch =='))

    issuer_dir = str(tmp_path.joinpath('issuer'))
    holder_dir = str(tmp_path.joinpath('holder'))
    cd_id = cred_def_id(DID, 20)
    rr_id = rev_reg_id(cd_id, 0)
    location = _write_tails(issuer_dir, cd_id, TAILS_HASH[0])

    path = Tails.fetch(holder_dir, rr_id, location, TAILS_HASH[0])
    assert path == join(holder_dir, cd_id, TAILS_HASH[0])
    assert isfile(path)
    assert Tails.linked(holder_dir, rr_id) == path
    assert Tails.fetch(holder_dir, rr_id, '/no/such/location', TAILS_HASH[0]) == path  # already local
    print('\n\n== 1 == Holder fetches tails file from published location once')

    with pytest.raises(AbsentTails):
        Tails.fetch(holder_dir, rev_reg_id(cd_id, 1), join(issuer_dir, 'nothing'), TAILS_HASH[1])
    print('\n\n== 2 == Missing published tails file raises AbsentTails')
