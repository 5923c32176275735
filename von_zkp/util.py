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


import re

from hashlib import sha256
from typing import Iterable, Union

from base58 import alphabet, b58decode, b58encode

from von_zkp.error import BadIdentifier
from von_zkp.frill import canon_json
from von_zkp.indytween import SchemaKey


B58 = alphabet if isinstance(alphabet, str) else alphabet.decode('ascii')

CD_ID_TAG_REVOCABLE = 'revocable'
CD_ID_TAG_IRREVOCABLE = 'irrevocable'


def did_for(verkey: Union[str, bytes]) -> str:
    """
    Return indy-style DID for input verification key: base58 encoding of its first 16 bytes.

    :param verkey: verification key, base58 string or raw bytes
    :return: DID
    """

    raw = b58decode(verkey) if isinstance(verkey, str) else verkey
    return b58encode(raw[:16]).decode('ascii')


def ok_did(token: str) -> bool:
    """
    Whether input token looks like a valid distributed identifier.

    :param token: candidate string
    :return: whether input token looks like a valid distributed identifier
    """

    try:
        return len(b58decode(token)) == 16 if token else False
    except ValueError:
        return False


def schema_id(origin_did: str, name: str, version: str) -> str:
    """
    Return schema identifier for input origin DID, schema name, and schema version.

    :param origin_did: DID of schema originator
    :param name: schema name
    :param version: schema version
    :return: schema identifier
    """

    return '{}:2:{}:{}'.format(origin_did, name, version)  # 2 marks schema id


def ok_schema_id(token: str) -> bool:
    """
    Whether input token looks like a valid schema identifier;
    i.e., <issuer-did>:2:<name>:<version>.

    :param token: candidate string
    :return: whether input token looks like a valid schema identifier
    """

    return bool(re.match('[{}]{{21,22}}:2:[^:]+:[0-9.]+$'.format(B58), token or ''))


def ok_version(token: str) -> bool:
    """
    Whether input token looks like a valid schema version; i.e., dot-separated integers.

    :param token: candidate string
    :return: whether input token is a valid version
    """

    return bool(re.match(r'[0-9]+(\.[0-9]+)*$', token or ''))


def schema_key(s_id: str) -> SchemaKey:
    """
    Return schema key (namedtuple) convenience for schema identifier components.
    Raise BadIdentifier on input that is not a schema identifier.

    :param s_id: schema identifier
    :return: schema key (namedtuple) object
    """

    if not ok_schema_id(s_id):
        raise BadIdentifier('Bad schema identifier {}'.format(s_id))

    s_key = s_id.split(':')
    s_key.pop(1)  # take out schema marker: 2 marks schema id

    return SchemaKey(*s_key)


def cred_def_id(issuer_did: str, schema_seq_no: int, revocation: bool = True) -> str:
    """
    Return credential definition identifier for input issuer DID, schema sequence number,
    and revocation support. The tag distinguishes revocable from irrevocable definitions
    so that each (issuer, schema, revocation support) combination has exactly one.

    :param issuer_did: DID of credential definition issuer
    :param schema_seq_no: schema sequence number
    :param revocation: whether credential definition supports revocation
    :return: credential definition identifier
    """

    return '{}:3:CL:{}:{}'.format(
        issuer_did,
        schema_seq_no,
        CD_ID_TAG_REVOCABLE if revocation else CD_ID_TAG_IRREVOCABLE)  # 3 marks cred def id


def ok_cred_def_id(token: str, issuer_did: str = None) -> bool:
    """
    Whether input token looks like a valid credential definition identifier from input issuer DID
    (default any); i.e., <issuer-did>:3:CL:<schema-seq-no>:<cred-def-id-tag>.

    :param token: candidate string
    :param issuer_did: issuer DID to match, if specified
    :return: whether input token looks like a valid credential definition identifier
    """

    cd_id_m = re.match('([{}]{{21,22}}):3:CL:[1-9][0-9]*:[^:]+$'.format(B58), token or '')
    return bool(cd_id_m) and ((not issuer_did) or cd_id_m.group(1) == issuer_did)


def cred_def_id2seq_no(cd_id: str) -> int:
    """
    Given a credential definition identifier, return its schema sequence number.
    Raise BadIdentifier on input that is not a credential definition identifier.

    :param cd_id: credential definition identifier
    :return: sequence number
    """

    if ok_cred_def_id(cd_id):
        return int(cd_id.split(':')[3])  # sequence number is token at 0-based position 3
    raise BadIdentifier('Bad credential definition identifier {}'.format(cd_id))


def rev_reg_id(cd_id: str, tag: Union[str, int]) -> str:
    """
    Given a credential definition identifier and a tag, return the corresponding
    revocation registry identifier, repeating the issuer DID from the
    input identifier.

    :param cd_id: credential definition identifier
    :param tag: tag to use
    :return: revocation registry identifier
    """

    return '{}:4:{}:CL_ACCUM:{}'.format(cd_id.split(":", 1)[0], cd_id, tag)  # 4 marks rev reg def id


def ok_rev_reg_id(token: str, issuer_did: str = None) -> bool:
    """
    Whether input token looks like a valid revocation registry identifier from input issuer DID (default any); i.e.,
    <issuer-did>:4:<issuer-did>:3:CL:<schema-seq-no>:<cred-def-id-tag>:CL_ACCUM:<rev-reg-id-tag>.

    :param token: candidate string
    :param issuer_did: issuer DID to match, if specified
    :return: whether input token looks like a valid revocation registry identifier
    """

    rr_id_m = re.match(
        '([{0}]{{21,22}}):4:([{0}]{{21,22}}):3:CL:[1-9][0-9]*:[^:]+:CL_ACCUM:[^:]+$'.format(B58),
        token or '')
    return bool(rr_id_m) and ((not issuer_did) or (rr_id_m.group(1) == issuer_did and rr_id_m.group(2) == issuer_did))


def rev_reg_id2cred_def_id(rr_id: str) -> str:
    """
    Given a revocation registry identifier, return its corresponding credential definition identifier.
    Raise BadIdentifier if input is not a revocation registry identifier.

    :param rr_id: revocation registry identifier
    :return: credential definition identifier
    """

    if ok_rev_reg_id(rr_id):
        return ':'.join(rr_id.split(':')[2:-2])  # rev reg id comprises (prefixes):<cred_def_id>:(suffixes)
    raise BadIdentifier('Bad revocation registry identifier {}'.format(rr_id))


def rev_reg_id2cred_def_id_tag(rr_id: str) -> (str, str):
    """
    Given a revocation registry identifier, return its corresponding credential definition identifier and
    (stringified int) tag. Raise BadIdentifier if input is not a revocation registry identifier.

    :param rr_id: revocation registry identifier
    :return: credential definition identifier and tag
    """

    if ok_rev_reg_id(rr_id):
        return (
            ':'.join(rr_id.split(':')[2:-2]),  # rev reg id comprises (prefixes):<cred_def_id>:(suffixes)
            str(rr_id.split(':')[-1])  # tag is last token
        )
    raise BadIdentifier('Bad revocation registry identifier {}'.format(rr_id))


def rev_reg_token(rr_id: str, revoked: Iterable[int]) -> str:
    """
    Return content-addressed token identifying the revocation registry state that revoking input
    indices targets: sha256 hex digest over canonical json of registry identifier and sorted,
    de-duplicated indices. Retrying the same update yields the same token.

    :param rr_id: revocation registry identifier
    :param revoked: credential revocation indices to revoke
    :return: token
    """

    return sha256(canon_json({
        'revRegId': rr_id,
        'revoked': sorted(set(int(i) for i in revoked))
    }).encode()).hexdigest()


def revealed_attrs(proof: dict) -> dict:
    """
    Fetch revealed attributes from input (opaque) proof and return dict mapping schema identifiers
    to dicts, each dict mapping attribute names to (raw) values.

    Relies on the referent convention that Verifier.create_proof_req() uses:
    <sub-request index>_<attribute name>_uuid.

    :param proof: proof as the primitives library creates it
    :return: dict mapping schema identifiers to dicts, each mapping revealed attribute names to (raw) values
    """

    rv = {}
    for (sub_index, ident) in enumerate(proof['identifiers']):
        rv.setdefault(ident['schema_id'], {}).update({
            '_'.join(reft.split('_')[1:-1]): proof['requested_proof']['revealed_attrs'][reft]['raw']
            for reft in proof['requested_proof']['revealed_attrs']
            if proof['requested_proof']['revealed_attrs'][reft]['sub_proof_index'] == sub_index})

    return rv
