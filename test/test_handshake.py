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


import pytest

from von_zkp.error import ProtocolError
from von_zkp.frill import Ink
from von_zkp.handshake import (
    ISSUANCE_TRANSITIONS,
    OFFER_TRANSITIONS,
    PROOF_TRANSITIONS,
    Handshake,
    IssuanceState,
    OfferState,
    ProofState)


def test_issuance_handshake():
    print(Ink.YELLOW('\n\n== Testing Issuance Handshake =='))

    issuance = Handshake('issuance', ISSUANCE_TRANSITIONS)
    assert issuance.state('t1') is None
    for state in (
            IssuanceState.PROPOSAL_SENT,
            IssuanceState.OFFER_RECEIVED,
            IssuanceState.REQUEST_SENT,
            IssuanceState.CREDENTIAL_ISSUED):
        issuance.advance('t1', state)
        assert issuance.state('t1') == state
    with pytest.raises(ProtocolError):
        issuance.advance('t1', IssuanceState.REQUEST_SENT)
    print('\n\n== 1 == Holder issuance runs proposal to credential once')

    issuance.advance('t2', IssuanceState.OFFER_RECEIVED)  # unsolicited offer
    with pytest.raises(ProtocolError):
        issuance.check('t2', IssuanceState.CREDENTIAL_ISSUED)
    with pytest.raises(ProtocolError):
        issuance.advance('t3', IssuanceState.REQUEST_SENT)
    assert issuance.state('t3') is None
    print('\n\n== 2 == Out-of-order transitions raise and leave state alone')

    offers = Handshake('offers', OFFER_TRANSITIONS)
    offers.advance('t1', OfferState.OFFER_SENT)
    offers.advance('t1', OfferState.CREDENTIAL_ISSUED)
    with pytest.raises(ProtocolError):
        offers.advance('t1', OfferState.CREDENTIAL_ISSUED)
    print('\n\n== 3 == Issuer issues once per offer')


def test_proof_handshake():
    print(Ink.YELLOW('\n\n== Testing Proof Handshake =='))

    proofs = Handshake('proofs', PROOF_TRANSITIONS)
    proofs.advance('t1', ProofState.REQUEST_RECEIVED)
    proofs.advance('t1', ProofState.PRESENTATION_BUILT)
    proofs.advance('t1', ProofState.VERIFIED)
    with pytest.raises(ProtocolError):
        proofs.advance('t1', ProofState.REJECTED)

    proofs.advance('t2', ProofState.REJECTED)  # verifier side starts at outcome
    with pytest.raises(ProtocolError):
        proofs.advance('t2', ProofState.VERIFIED)
    print('\n\n== 1 == Proof outcomes are final')
