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


from enum import IntEnum


class ErrorCode(IntEnum):
    """
    Error codes particular to von_zkp operation.
    """

    Success = 0

    # Errors to do with input
    Validation = 1000
    BadIdentifier = 1001
    BadAttribute = 1002

    # Errors on dangling references
    NotFound = 2000
    AbsentSchema = 2001
    AbsentCredDef = 2002
    AbsentRevReg = 2003
    AbsentCred = 2004
    AbsentMasterSecret = 2005
    AbsentTails = 2006
    AbsentRecord = 2007

    # Errors in the protocol itself
    Crypto = 3000
    Protocol = 3001
    Capacity = 3002
    StaleWitness = 3003
    Verification = 3004

    # Errors to do with ledger and wallet operation
    BadLedgerTxn = 4000
    WalletState = 4001
    CorruptWallet = 4002
    ExtantRecord = 4003

    # Errors to do with caching
    CacheIndex = 5000

    # JSON validation
    JSONValidation = 9000


class VonZkpError(Exception):
    """
    Error class for von_zkp operation.
    """

    def __init__(self, error_code: ErrorCode, message: str):
        """
        Initialize on code and message.

        :param error_code: error code
        :param message: error message
        """

        super().__init__(message)
        self.error_code = error_code
        self.message = message

    def __str__(self):
        """
        String representation of error.
        """

        return '({}) {}'.format(self.error_code, self.message)


class ValidationError(VonZkpError):
    """
    Malformed or inconsistent input: resubmit with corrected input.
    """

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.Validation):
        """
        Initialize on message.

        :param message: error message
        :param error_code: error code, for use in subclasses
        """

        super().__init__(error_code, message)


class BadIdentifier(ValidationError):
    """
    Identifier is not formatted correctly.
    """

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.BadIdentifier)


class BadAttribute(ValidationError):
    """
    Attribute is unknown to schema, missing, duplicated, or has no valid value.
    """

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.BadAttribute)


class JSONValidation(ValidationError):
    """
    Payload or configuration does not validate against its JSON schema.
    """

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.JSONValidation)


class NotFoundError(VonZkpError):
    """
    Dangling reference to schema, credential definition, revocation registry, or other item.
    """

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.NotFound):
        """
        Initialize on message.

        :param message: error message
        :param error_code: error code, for use in subclasses
        """

        super().__init__(error_code, message)


class AbsentSchema(NotFoundError):
    """
    Schema does not exist on the ledger.
    """

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.AbsentSchema)


class AbsentCredDef(NotFoundError):
    """
    Credential definition does not exist on the ledger.
    """

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.AbsentCredDef)


class AbsentRevReg(NotFoundError):
    """
    Revocation registry does not exist on the ledger, or has no private material in the issuer wallet.
    """

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.AbsentRevReg)


class AbsentCred(NotFoundError):
    """
    Credential is not in the holder wallet.
    """

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.AbsentCred)


class AbsentMasterSecret(NotFoundError):
    """
    Holder has no master secret on the label of interest.
    """

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.AbsentMasterSecret)


class AbsentTails(NotFoundError):
    """
    Tails file is not available for revocation registry.
    """

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.AbsentTails)


class AbsentRecord(NotFoundError):
    """
    Wallet has no record of interest.
    """

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.AbsentRecord)


class CryptoError(VonZkpError):
    """
    Cryptographic primitive operation failed or returned an inconsistent proof.
    """

    def __init__(self, message: str):
        super().__init__(ErrorCode.Crypto, message)


class ProtocolError(VonZkpError):
    """
    Handshake invariant violated; e.g., nonce mismatch or out-of-order message.
    """

    def __init__(self, message: str):
        super().__init__(ErrorCode.Protocol, message)


class CapacityError(VonZkpError):
    """
    Revocation registry is full.
    """

    def __init__(self, message: str):
        super().__init__(ErrorCode.Capacity, message)


class StaleWitnessError(VonZkpError):
    """
    Witness predates the latest published revocation registry delta. Recoverable:
    refresh the witness and retry.
    """

    def __init__(self, message: str, rr_id: str = None, version: int = None, latest: int = None):
        """
        Initialize on message and revocation registry context.

        :param message: error message
        :param rr_id: revocation registry identifier
        :param version: registry version of the stale witness
        :param latest: latest registry version on the ledger
        """

        super().__init__(ErrorCode.StaleWitness, message)
        self.rr_id = rr_id
        self.version = version
        self.latest = latest


class VerificationError(VonZkpError):
    """
    Proof was checked and failed: a negative protocol outcome, not a crash.
    """

    def __init__(self, message: str):
        super().__init__(ErrorCode.Verification, message)


class BadLedgerTxn(VonZkpError):
    """
    Ledger rejected transaction.
    """

    def __init__(self, message: str):
        super().__init__(ErrorCode.BadLedgerTxn, message)


class WalletState(VonZkpError):
    """
    Wallet is in wrong state (open or closed) for operation.
    """

    def __init__(self, message: str):
        super().__init__(ErrorCode.WalletState, message)


class CorruptWallet(VonZkpError):
    """
    Wallet is inconsistent with ledger.
    """

    def __init__(self, message: str):
        super().__init__(ErrorCode.CorruptWallet, message)


class ExtantRecord(VonZkpError):
    """
    Wallet already has a record where operation requires none.
    """

    def __init__(self, message: str):
        super().__init__(ErrorCode.ExtantRecord, message)


class CacheIndex(VonZkpError):
    """
    Cache has no item at the index of interest.
    """

    def __init__(self, message: str):
        super().__init__(ErrorCode.CacheIndex, message)
