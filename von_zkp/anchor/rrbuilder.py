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
import json
import logging

from os import makedirs
from os.path import expanduser, join

from von_zkp.anchor.base import BaseAnchor
from von_zkp.cache import RevoCacheEntry, REVO_CACHE
from von_zkp.error import AbsentRecord, BadIdentifier, CorruptWallet, ValidationError
from von_zkp.ledger import IdentityLedger
from von_zkp.primitives import Primitives
from von_zkp.tails import Tails
from von_zkp.util import ok_cred_def_id, rev_reg_id, rev_reg_token
from von_zkp.validcfg import RR_SIZE_MAX, validate_config
from von_zkp.wallet import StorageRecord, Wallet
from von_zkp.wallet.record import TYPE_CRED_DEF_PRIVATE, TYPE_REV_ID_INFO, TYPE_REV_REG_PRIVATE


LOGGER = logging.getLogger(__name__)


class RevRegBuilder(BaseAnchor):
    """
    Issuer alter ego to build revocation registries: accumulator, tails file, and private key
    on a revocable credential definition. Each revocation registry issues on demand: its
    accumulator starts empty and each issuance adds a delta to its log.
    """

    DIR_TAILS = join(expanduser('~'), '.indy_client', 'tails')
    RR_SIZE_DEFAULT = 64

    def __init__(self, wallet: Wallet, ledger: IdentityLedger, primitives: Primitives = None, **kwargs) -> None:
        """
        Initializer for RevRegBuilder anchor. Retain input parameters; validate configuration.

        :param wallet: wallet for anchor use
        :param ledger: identity ledger for anchor use
        :param primitives: CL primitives backend
        :param config: issuer configuration dict; e.g.,

        ::

            {
                'rr-size-default': 64,
                'rr-auto-roll': True,
                'dir-tails': '/var/lib/tails'
            }

        """

        LOGGER.debug('RevRegBuilder.__init__ >>> wallet: %s, ledger: %s, kwargs: %s', wallet, ledger, kwargs)

        super().__init__(wallet, ledger, primitives, **kwargs)

        self._config = kwargs.get('config', None) or {}
        validate_config('issuer', self._config)

        self._dir_tails = self._config.get('dir-tails', RevRegBuilder.DIR_TAILS)
        makedirs(self._dir_tails, exist_ok=True)
        self._cd_locks = {}

        LOGGER.debug('RevRegBuilder.__init__ <<<')

    @property
    def config(self) -> dict:
        """
        Accessor for configuration dict

        :return: issuer config dict
        """

        return self._config

    @property
    def dir_tails(self) -> str:
        """
        Accessor for root of tails directory

        :return: tails directory
        """

        return self._dir_tails

    async def create_rev_reg(self, cd_id: str, max_cred_num: int = None) -> dict:
        """
        Create revocation registry on the next free tag for input credential definition,
        associate its tails file, and publish its definition and creation delta (version 0).

        Raise BadIdentifier for bad cred def id, ValidationError for a credential definition not supporting
        revocation or a size out of range, or CorruptWallet if the wallet has no private key for the credential
        definition.

        :param cd_id: credential definition identifier
        :param max_cred_num: maximum number of credentials that registry can issue, in [1, 100000]
            (default per configuration, else 64)
        :return: revocation registry definition as published
        """

        LOGGER.debug('RevRegBuilder.create_rev_reg >>> cd_id: %s, max_cred_num: %s', cd_id, max_cred_num)

        async with self._cd_lock(cd_id):
            rv = await self._create_rev_reg(cd_id, max_cred_num)

        LOGGER.debug('RevRegBuilder.create_rev_reg <<< %s', rv['id'])
        return rv

    def _cd_lock(self, cd_id: str) -> asyncio.Lock:
        """
        Return lock serializing revocation registry creation on credential definition: tags allocate from
        the tails directory contents.
        """

        return self._cd_locks.setdefault(cd_id, asyncio.Lock())

    async def _create_rev_reg(self, cd_id: str, max_cred_num: int = None) -> dict:
        """
        Create revocation registry as per create_rev_reg(), with caller holding the credential definition lock.
        """

        LOGGER.debug('RevRegBuilder._create_rev_reg >>> cd_id: %s, max_cred_num: %s', cd_id, max_cred_num)

        if not ok_cred_def_id(cd_id, self.did):
            LOGGER.debug('RevRegBuilder._create_rev_reg <!< Bad cred def id %s', cd_id)
            raise BadIdentifier('Bad cred def id {}'.format(cd_id))

        if max_cred_num is None:
            max_cred_num = self.config.get('rr-size-default', RevRegBuilder.RR_SIZE_DEFAULT)
        if isinstance(max_cred_num, bool) or not isinstance(max_cred_num, int) or not 1 <= max_cred_num <= RR_SIZE_MAX:
            LOGGER.debug(
                'RevRegBuilder._create_rev_reg <!< Rev reg size %s not an integer in [1, %s]',
                max_cred_num,
                RR_SIZE_MAX)
            raise ValidationError('Rev reg size {} not an integer in [1, {}]'.format(max_cred_num, RR_SIZE_MAX))

        cred_def = await self.get_cred_def(cd_id)
        if not cred_def['revocation']:
            LOGGER.debug('RevRegBuilder._create_rev_reg <!< Cred def %s does not support revocation', cd_id)
            raise ValidationError('Cred def {} does not support revocation'.format(cd_id))

        try:
            await self.wallet.get_record(TYPE_CRED_DEF_PRIVATE, cd_id)
        except AbsentRecord:
            LOGGER.debug('RevRegBuilder._create_rev_reg <!< Wallet %s has no private key for %s', self.name, cd_id)
            raise CorruptWallet('Wallet {} has no private key for cred def {}'.format(self.name, cd_id))

        (tag, _) = Tails.next_tag(self.dir_tails, cd_id)
        rr_id = rev_reg_id(cd_id, tag)
        dir_cd_id = join(self.dir_tails, cd_id)
        makedirs(dir_cd_id, exist_ok=True)

        (rr_def, rr_def_private, rev_reg, delta) = await self.primitives.create_rev_reg(
            self.did,
            cred_def['definition'],
            tag,
            max_cred_num,
            dir_cd_id)
        Tails.associate(self.dir_tails, rr_id, rr_def['value']['tailsHash'])

        (req, signature) = await self._sign_request('rev_reg_def', {
            'id': rr_id,
            'credentialDefinition': cd_id,
            'maximumCredentialCount': max_cred_num,
            'tag': tag,
            'definition': rr_def
        })
        published = await self.ledger.publish_rev_reg_def(req, signature)

        await self.wallet.write_non_secret(StorageRecord(
            TYPE_REV_REG_PRIVATE,
            json.dumps({
                'private': rr_def_private,
                'registry': rev_reg,
                'revoked': []
            }),
            {'cd_id': cd_id},
            rr_id))
        await self.wallet.write_non_secret(StorageRecord(
            TYPE_REV_ID_INFO,
            json.dumps({
                'definitionId': rr_id,
                'nextUnusedId': 1,
                'usedIds': []
            }),
            {'cd_id': cd_id},
            rr_id))

        (req, signature) = await self._sign_request('rev_reg_delta', {
            'revRegId': rr_id,
            'token': rev_reg_token(rr_id, []),  # creation targets the state with nothing revoked
            'issued': [],
            'revoked': [],
            'delta': delta
        })
        await self.ledger.append_rev_reg_delta(req, signature)

        with REVO_CACHE.lock:
            REVO_CACHE[rr_id] = RevoCacheEntry(published, Tails(self.dir_tails, cd_id, tag))
        LOGGER.info('Issuer %s created rev reg %s on %s credentials', self.name, rr_id, max_cred_num)

        rv = published
        LOGGER.debug('RevRegBuilder._create_rev_reg <<< %s', rv)
        return rv
