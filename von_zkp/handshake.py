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


import logging

from enum import Enum
from typing import Mapping, Set

from von_zkp.error import ProtocolError


LOGGER = logging.getLogger(__name__)


class IssuanceState(Enum):
    """
    Holder-side states of blind issuance handshake.
    """

    PROPOSAL_SENT = 'proposal-sent'
    OFFER_RECEIVED = 'offer-received'
    REQUEST_SENT = 'request-sent'
    CREDENTIAL_ISSUED = 'credential-issued'


class OfferState(Enum):
    """
    Issuer-side states of blind issuance handshake.
    """

    OFFER_SENT = 'offer-sent'
    CREDENTIAL_ISSUED = 'credential-issued'


class ProofState(Enum):
    """
    States of proof exchange handshake: holder-prover side up to presentation, verifier side thereafter.
    """

    REQUEST_RECEIVED = 'request-received'
    PRESENTATION_BUILT = 'presentation-built'
    VERIFIED = 'verified'
    REJECTED = 'rejected'


ISSUANCE_TRANSITIONS = {
    None: {IssuanceState.PROPOSAL_SENT, IssuanceState.OFFER_RECEIVED},  # holder may take unsolicited offer
    IssuanceState.PROPOSAL_SENT: {IssuanceState.OFFER_RECEIVED},
    IssuanceState.OFFER_RECEIVED: {IssuanceState.REQUEST_SENT},
    IssuanceState.REQUEST_SENT: {IssuanceState.CREDENTIAL_ISSUED},
    IssuanceState.CREDENTIAL_ISSUED: set()
}

OFFER_TRANSITIONS = {
    None: {OfferState.OFFER_SENT},
    OfferState.OFFER_SENT: {OfferState.CREDENTIAL_ISSUED},
    OfferState.CREDENTIAL_ISSUED: set()
}

PROOF_TRANSITIONS = {
    None: {ProofState.REQUEST_RECEIVED, ProofState.VERIFIED, ProofState.REJECTED},
    ProofState.REQUEST_RECEIVED: {ProofState.PRESENTATION_BUILT},
    ProofState.PRESENTATION_BUILT: {ProofState.VERIFIED, ProofState.REJECTED},
    ProofState.VERIFIED: set(),
    ProofState.REJECTED: set()
}


class Handshake:
    """
    Track handshake state by thread identifier over a fixed transition table.
    """

    def __init__(self, name: str, transitions: Mapping[Enum, Set[Enum]]) -> None:
        """
        Initialize on name (for logging) and transition table mapping each state (None for start)
        to the set of states that may follow it.

        :param name: handshake name
        :param transitions: transition table
        """

        self._name = name
        self._transitions = transitions
        self._states = {}

    def state(self, thread_id: str) -> Enum:
        """
        Return current state of handshake on thread identifier, None if not started.

        :param thread_id: thread identifier
        :return: current state
        """

        return self._states.get(thread_id)

    def check(self, thread_id: str, state: Enum) -> None:
        """
        Raise ProtocolError if handshake on thread identifier cannot advance to input state.

        :param thread_id: thread identifier
        :param state: state to advance to
        """

        current = self._states.get(thread_id)
        if state not in self._transitions[current]:
            LOGGER.debug(
                'Handshake.check <!< %s handshake %s cannot go from %s to %s',
                self._name,
                thread_id,
                current,
                state)
            raise ProtocolError('{} handshake {} cannot go from {} to {}'.format(
                self._name,
                thread_id,
                current.value if current else 'start',
                state.value))

    def advance(self, thread_id: str, state: Enum) -> None:
        """
        Advance handshake on thread identifier to input state. Raise ProtocolError for a transition
        out of order.

        :param thread_id: thread identifier
        :param state: state to advance to
        """

        LOGGER.debug('Handshake.advance >>> thread_id: %s, state: %s', thread_id, state)

        self.check(thread_id, state)
        self._states[thread_id] = state

        LOGGER.debug('Handshake.advance <<<')
