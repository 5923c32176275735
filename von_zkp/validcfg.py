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


import jsonschema

from von_zkp.error import JSONValidation


RR_SIZE_MAX = 100000

_SEED = {
    'type': 'string',
    'minLength': 32,
    'maxLength': 32
}

CONFIG_JSON_SCHEMA = {
    'issuer': {
        '$schema': 'http://json-schema.org/draft-04/schema',
        'type': 'object',
        'properties': {
            'rr-size-default': {
                'type': 'integer',
                'minimum': 1,
                'maximum': RR_SIZE_MAX
            },
            'rr-auto-roll': {
                'type': 'boolean'
            },
            'dir-tails': {
                'type': 'string'
            }
        },
        'additionalProperties': False
    },
    'holder-prover': {
        '$schema': 'http://json-schema.org/draft-04/schema',
        'type': 'object',
        'properties': {
            'dir-tails': {
                'type': 'string'
            },
            'master-secret-label': {
                'type': 'string',
                'minLength': 1
            }
        },
        'additionalProperties': False
    },
    'verifier': {
        '$schema': 'http://json-schema.org/draft-04/schema',
        'type': 'object',
        'properties': {
            'consume-nonces': {
                'type': 'boolean'
            },
            'nonce-ttl': {
                'type': 'integer',
                'minimum': 1
            }
        },
        'additionalProperties': False
    },
    'plugin': {
        '$schema': 'http://json-schema.org/draft-04/schema',
        'type': 'object',
        'properties': {
            'issuer-seed': _SEED,
            'holder-seed': _SEED,
            'verifier-seed': _SEED,
            'issuer': {
                'type': 'object'
            },
            'holder-prover': {
                'type': 'object'
            },
            'verifier': {
                'type': 'object'
            }
        },
        'additionalProperties': False
    }
}


def validate_config(key: str, config: dict) -> None:
    """
    Call jsonschema validation to raise JSONValidation on non-compliance or silently pass.

    :param key: validation schema key of interest
    :param config: configuration dict to validate
    """

    try:
        jsonschema.validate(config, CONFIG_JSON_SCHEMA[key])
    except jsonschema.ValidationError as x_valid:
        raise JSONValidation('JSON validation error on {} configuration: {}'.format(key, x_valid.message)) from x_valid
    except jsonschema.SchemaError as x_schema:
        raise JSONValidation('JSON schema error on {} specification: {}'.format(key, x_schema.message)) from x_schema
