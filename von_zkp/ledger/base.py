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


from abc import ABC, abstractmethod
from typing import Sequence, Union


class IdentityLedger(ABC):
    """
    Abstract identity ledger: the public, append-only store for DIDs, schemas, credential definitions,
    revocation registry definitions, and revocation registry delta logs.

    Write requests are dicts of the form {'identifier': <submitter DID>, 'operation': <txn type>, 'data': {...}},
    signed (detached, base58) over their canonical json by the submitter's DID key. Implementations check each
    signature against the submitter's nym and raise BadLedgerTxn on a bad signature or unknown nym.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """
        Accessor for ledger name.

        :return: ledger name
        """

    @abstractmethod
    async def add_nym(self, did: str, verkey: str) -> dict:
        """
        Register self-certifying nym: DID on its verification key.

        :param did: DID
        :param verkey: verification key
        :return: nym record
        """

    @abstractmethod
    async def get_nym(self, did: str) -> dict:
        """
        Return nym record for DID, or None for no such nym.

        :param did: DID
        :return: nym record {'did': ..., 'verkey': ...} or None
        """

    @abstractmethod
    async def publish_schema(self, req: dict, signature: str) -> dict:
        """
        Publish schema; return it as published, with sequence number.

        :param req: signed request carrying schema in its data
        :param signature: base58 signature over request
        :return: schema as published
        """

    @abstractmethod
    async def get_schema(self, index: Union[str, int]) -> dict:
        """
        Return schema by identifier or sequence number. Raise AbsentSchema for no such schema.

        :param index: schema identifier or sequence number
        :return: schema
        """

    @abstractmethod
    async def publish_cred_def(self, req: dict, signature: str) -> dict:
        """
        Publish credential definition public parts.

        :param req: signed request carrying credential definition in its data
        :param signature: base58 signature over request
        :return: credential definition as published
        """

    @abstractmethod
    async def get_cred_def(self, cd_id: str) -> dict:
        """
        Return credential definition by identifier. Raise AbsentCredDef for no such credential definition.

        :param cd_id: credential definition identifier
        :return: credential definition
        """

    @abstractmethod
    async def publish_rev_reg_def(self, req: dict, signature: str) -> dict:
        """
        Publish revocation registry definition.

        :param req: signed request carrying revocation registry definition in its data
        :param signature: base58 signature over request
        :return: revocation registry definition as published
        """

    @abstractmethod
    async def get_rev_reg_def(self, rr_id: str) -> dict:
        """
        Return revocation registry definition by identifier. Raise AbsentRevReg for no such registry.

        :param rr_id: revocation registry identifier
        :return: revocation registry definition
        """

    @abstractmethod
    async def append_rev_reg_delta(self, req: dict, signature: str) -> (dict, bool):
        """
        Append delta to revocation registry delta log, atomically. The ledger assigns version (position in log),
        timestamp, and creation time. A delta whose token the log already holds is not appended again:
        return the original entry instead.

        :param req: signed request carrying delta {'revRegId', 'token', 'issued', 'revoked', 'delta'} in its data
        :param signature: base58 signature over request
        :return: log entry and whether this call appended it
        """

    @abstractmethod
    async def get_rev_reg_deltas(self, rr_id: str, fro: int = None, to: int = None) -> Sequence[dict]:
        """
        Return ordered slice of revocation registry delta log, from version fro to version to inclusive
        (default entire log). Raise AbsentRevReg for no such registry.

        :param rr_id: revocation registry identifier
        :param fro: earliest version of interest
        :param to: latest version of interest
        :return: log entries in version order
        """

    @abstractmethod
    async def get_rev_reg_delta_by_token(self, rr_id: str, token: str) -> dict:
        """
        Return log entry on input idempotence token, or None for no such entry.

        :param rr_id: revocation registry identifier
        :param token: idempotence token
        :return: log entry or None
        """

    @abstractmethod
    async def latest_rev_reg_version(self, rr_id: str) -> int:
        """
        Return version of latest entry in revocation registry delta log. Raise AbsentRevReg for no such registry.

        :param rr_id: revocation registry identifier
        :return: latest version
        """
