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
from collections import namedtuple
from typing import Mapping, Sequence


RevocationConfig = namedtuple('RevocationConfig', 'rr_def rr_def_private rev_reg index issued')
RevocationConfig.__doc__ = """
Revocation material for signing a revocable credential: public and private registry definitions,
current registry (accumulator), index to allocate, and indices already issued.
"""

PresentedCred = namedtuple('PresentedCred', 'cred revealed unrevealed predicates timestamp rev_state')
PresentedCred.__doc__ = """
One credential's part in a presentation: credential, referents to reveal, referents to prove
without revealing, predicate referents, and (for a revocable credential) timestamp and revocation state.
"""


class Primitives(ABC):
    """
    Abstract CL signature and accumulator primitives. The protocol core treats every value that
    passes through this boundary (keys, offers, requests, signatures, accumulators, witnesses,
    proofs) as an opaque, json-serializable dict. Implementations raise CryptoError on any failure,
    chaining the underlying library error.
    """

    @abstractmethod
    async def generate_nonce(self) -> str:
        """
        Return fresh, cryptographically random nonce as a decimal string.

        :return: nonce
        """

    @abstractmethod
    async def create_schema(self, origin_did: str, name: str, version: str, attr_names: Sequence[str]) -> dict:
        """
        Return opaque schema for input schema parameters, raising BadAttribute on attribute names
        that the implementation cannot distinguish.

        :param origin_did: DID of schema originator
        :param name: schema name
        :param version: schema version
        :param attr_names: attribute names
        :return: opaque schema
        """

    @abstractmethod
    async def create_cred_def(self, origin_did: str, schema: dict, tag: str, revocation: bool) -> (dict, dict, dict):
        """
        Create credential definition key pair and key correctness proof.

        :param origin_did: DID of issuer
        :param schema: schema as published, with sequence number
        :param tag: credential definition tag
        :param revocation: whether to support revocation
        :return: public credential definition, private key, key correctness proof
        """

    @abstractmethod
    async def create_master_secret(self) -> dict:
        """
        Return new master (link) secret.

        :return: opaque master secret
        """

    @abstractmethod
    async def create_cred_offer(self, s_id: str, cred_def: dict, key_proof: dict) -> dict:
        """
        Create credential offer carrying key correctness proof and fresh nonce.

        :param s_id: schema identifier
        :param cred_def: public credential definition
        :param key_proof: key correctness proof
        :return: opaque offer, exposing its nonce at key 'nonce'
        """

    @abstractmethod
    async def create_cred_req(
            self,
            prover_did: str,
            cred_def: dict,
            master_secret: dict,
            master_secret_label: str,
            offer: dict) -> (dict, dict):
        """
        Blind master secret and prove correctness of blinding against offer nonce.

        :param prover_did: DID of prover
        :param cred_def: public credential definition
        :param master_secret: master secret
        :param master_secret_label: label of master secret
        :param offer: opaque offer
        :return: opaque request and its private metadata (blinding factors)
        """

    @abstractmethod
    async def create_cred(
            self,
            cred_def: dict,
            cred_def_private: dict,
            offer: dict,
            request: dict,
            values: Mapping[str, str],
            encoded: Mapping[str, str],
            revocation: RevocationConfig = None) -> (dict, dict, dict):
        """
        Check blinded secrets correctness proof and sign attribute values with blinded master secret.

        :param cred_def: public credential definition
        :param cred_def_private: credential definition private key
        :param offer: opaque offer
        :param request: opaque request
        :param values: raw attribute values
        :param encoded: encoded attribute values
        :param revocation: revocation material for revocable credential
        :return: opaque credential, updated registry (accumulator) or None, issuance delta or None
        """

    @abstractmethod
    async def process_cred(
            self,
            cred: dict,
            metadata: dict,
            master_secret: dict,
            cred_def: dict,
            rr_def: dict = None) -> dict:
        """
        Verify issuer signature and unblind it with request metadata and master secret.

        :param cred: opaque credential
        :param metadata: request metadata (blinding factors)
        :param master_secret: master secret
        :param cred_def: public credential definition
        :param rr_def: revocation registry definition, for revocable credential
        :return: processed credential
        """

    @abstractmethod
    async def create_rev_reg(
            self,
            origin_did: str,
            cred_def: dict,
            tag: str,
            max_cred_num: int,
            tails_dir: str) -> (dict, dict, dict, dict):
        """
        Create accumulator and tails file for revocation registry, issuing on demand.

        :param origin_did: DID of issuer
        :param cred_def: public credential definition
        :param tag: revocation registry tag
        :param max_cred_num: maximum number of credentials
        :param tails_dir: directory for tails file
        :return: registry definition, registry private key, registry (accumulator), creation delta
        """

    @abstractmethod
    async def update_rev_reg(
            self,
            cred_def: dict,
            rr_def: dict,
            rr_def_private: dict,
            rev_reg: dict,
            revoked: Sequence[int]) -> (dict, dict):
        """
        Remove revoked indices from accumulator.

        :param cred_def: public credential definition
        :param rr_def: revocation registry definition
        :param rr_def_private: registry private key
        :param rev_reg: current registry (accumulator)
        :param revoked: indices to revoke
        :return: updated registry (accumulator) and delta
        """

    @abstractmethod
    async def merge_rev_reg_deltas(self, fro_delta: dict, to_delta: dict) -> dict:
        """
        Merge two contiguous deltas into one.

        :param fro_delta: earlier delta
        :param to_delta: later delta
        :return: merged delta
        """

    @abstractmethod
    async def create_witness(self, rr_def: dict, delta: dict, index: int, timestamp: int, tails_path: str) -> dict:
        """
        Create membership witness for index from cumulative delta since registry creation.

        :param rr_def: revocation registry definition
        :param delta: cumulative delta
        :param index: credential revocation index
        :param timestamp: timestamp of latest delta folded in
        :param tails_path: path to tails file
        :return: opaque revocation state (witness and accumulator snapshot)
        """

    @abstractmethod
    async def update_witness(
            self,
            rev_state: dict,
            rr_def: dict,
            delta: dict,
            index: int,
            timestamp: int,
            tails_path: str) -> dict:
        """
        Fold delta since witness state into witness.

        :param rev_state: current opaque revocation state
        :param rr_def: revocation registry definition
        :param delta: merged delta since revocation state
        :param index: credential revocation index
        :param timestamp: timestamp of latest delta folded in
        :param tails_path: path to tails file
        :return: updated opaque revocation state
        """

    @abstractmethod
    async def create_proof(
            self,
            proof_req: dict,
            presented: Sequence[PresentedCred],
            master_secret: dict,
            schemas: Sequence[dict],
            cred_defs: Sequence[dict]) -> dict:
        """
        Create one aggregated proof over all presented credentials, bound to the proof request nonce.

        :param proof_req: opaque proof request
        :param presented: credentials with their referents and revocation states
        :param master_secret: master secret
        :param schemas: schemas of credentials
        :param cred_defs: public credential definitions of credentials
        :return: opaque proof
        """

    @abstractmethod
    async def verify_proof(
            self,
            proof: dict,
            proof_req: dict,
            schemas: Sequence[dict],
            cred_defs: Sequence[dict],
            rr_defs: Sequence[dict],
            rr_entries: Mapping[str, Mapping[int, dict]]) -> bool:
        """
        Check proof against proof request and public parameters.

        :param proof: opaque proof
        :param proof_req: opaque proof request
        :param schemas: schemas of credentials
        :param cred_defs: public credential definitions
        :param rr_defs: revocation registry definitions
        :param rr_entries: dict mapping revocation registry identifiers to dicts mapping timestamps to registries
        :return: whether proof verifies
        """

    @abstractmethod
    async def generate_safe_prime(self, bits: int) -> int:
        """
        Return safe prime p = 2q + 1 (q prime) of input bit length.

        :param bits: bit length
        :return: safe prime
        """
