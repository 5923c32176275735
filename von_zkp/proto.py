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


_DRAFT = 'http://json-schema.org/draft-04/schema'

_STR = {
    'type': 'string',
    'minLength': 1
}

_INDEX = {
    'type': 'integer',
    'minimum': 1
}

_OBJ = {
    'type': 'object'
}

PROTO_MSG_JSON_SCHEMA = {
    'options': {
        '$schema': _DRAFT,
        'type': 'object',
        'properties': {
            'type': {
                'type': 'string'
            }
        }
    },

    'vc_zkp_create_credential_schema': {
        '$schema': _DRAFT,
        'type': 'object',
        'properties': {
            'issuer': _STR,
            'schemaName': _STR,
            'schemaVersion': _STR,
            'description': {
                'type': 'string'
            },
            'properties': {
                'type': 'object',
                'minProperties': 1,
                'additionalProperties': {
                    'type': 'object',
                    'properties': {
                        'type': {
                            'type': 'string'
                        }
                    }
                }
            },
            'requiredProperties': {
                'type': 'array',
                'items': _STR
            },
            'allowAdditionalProperties': {
                'type': 'boolean'
            }
        },
        'required': ['issuer', 'schemaName', 'properties'],
        'additionalProperties': False
    },

    'vc_zkp_create_credential_definition': {
        '$schema': _DRAFT,
        'type': 'object',
        'properties': {
            'issuerDid': _STR,
            'schemaDid': _STR,
            'revocation': {
                'type': 'boolean'
            }
        },
        'required': ['issuerDid', 'schemaDid'],
        'additionalProperties': False
    },

    'vc_zkp_create_credential_proposal': {
        '$schema': _DRAFT,
        'type': 'object',
        'properties': {
            'issuer': _STR,
            'subject': _STR,
            'schema': _STR
        },
        'required': ['issuer', 'subject', 'schema'],
        'additionalProperties': False
    },

    'vc_zkp_create_credential_offer': {
        '$schema': _DRAFT,
        'type': 'object',
        'properties': {
            'credentialProposal': _OBJ,
            'credentialDefinition': _STR
        },
        'required': ['credentialProposal', 'credentialDefinition'],
        'additionalProperties': False
    },

    'vc_zkp_request_credential': {
        '$schema': _DRAFT,
        'type': 'object',
        'properties': {
            'credentialOffering': _OBJ,
            'masterSecretLabel': _STR,
            'credentialValues': _OBJ
        },
        'required': ['credentialOffering'],
        'additionalProperties': False
    },

    'vc_zkp_create_revocation_registry_definition': {
        '$schema': _DRAFT,
        'type': 'object',
        'properties': {
            'credentialDefinition': _STR,
            'maximumCredentialCount': _INDEX
        },
        'required': ['credentialDefinition'],
        'additionalProperties': False
    },

    'vc_zkp_update_revocation_registry': {
        '$schema': _DRAFT,
        'type': 'object',
        'properties': {
            'revocationRegistryDefinition': _STR,
            'revokedIds': {
                'type': 'array',
                'items': _INDEX,
                'minItems': 1
            }
        },
        'required': ['revocationRegistryDefinition', 'revokedIds'],
        'additionalProperties': False
    },

    'vc_zkp_issue_credential': {
        '$schema': _DRAFT,
        'type': 'object',
        'properties': {
            'credentialRequest': _OBJ,
            'credentialRevocationDefinition': _STR,
            'credentialValues': _OBJ
        },
        'required': ['credentialRequest'],
        'additionalProperties': False
    },

    'vc_zkp_finish_credential': {
        '$schema': _DRAFT,
        'type': 'object',
        'properties': {
            'credential': _OBJ,
            'witness': {
                'type': ['object', 'null']
            }
        },
        'required': ['credential'],
        'additionalProperties': False
    },

    'vc_zkp_revoke_credential': {
        '$schema': _DRAFT,
        'type': 'object',
        'properties': {
            'revocationRegistryDefinition': _STR,
            'credentialRevocationId': _INDEX
        },
        'required': ['revocationRegistryDefinition', 'credentialRevocationId'],
        'additionalProperties': False
    },

    'vc_zkp_request_proof': {
        '$schema': _DRAFT,
        'type': 'object',
        'properties': {
            'verifierDid': _STR,
            'proverDid': _STR,
            'subProofRequests': {
                'type': 'array',
                'minItems': 1,
                'items': {
                    'type': 'object',
                    'properties': {
                        'schema': _STR,
                        'revealedAttributes': {
                            'type': 'array',
                            'items': _STR
                        },
                        'predicates': {
                            'type': 'array',
                            'items': {
                                'type': 'object',
                                'properties': {
                                    'attribute': _STR,
                                    'type': {
                                        'type': 'string',
                                        'enum': ['>=', '<=', '>', '<']
                                    },
                                    'value': {
                                        'type': 'integer'
                                    }
                                },
                                'required': ['attribute', 'type', 'value'],
                                'additionalProperties': False
                            }
                        }
                    },
                    'required': ['schema'],
                    'additionalProperties': False
                }
            }
        },
        'required': ['verifierDid', 'subProofRequests'],
        'additionalProperties': False
    },

    'vc_zkp_present_proof': {
        '$schema': _DRAFT,
        'type': 'object',
        'properties': {
            'proofRequest': _OBJ,
            'credentialIds': {
                'type': 'array',
                'minItems': 1,
                'items': _STR
            },
            'witnesses': _OBJ,
            'masterSecretLabel': _STR
        },
        'required': ['proofRequest', 'credentialIds'],
        'additionalProperties': False
    },

    'vc_zkp_verify_proof': {
        '$schema': _DRAFT,
        'type': 'object',
        'properties': {
            'presentedProof': _OBJ,
            'proofRequest': _OBJ
        },
        'required': ['presentedProof', 'proofRequest'],
        'additionalProperties': False
    },

    'create_master_secret': {
        '$schema': _DRAFT,
        'type': 'object',
        'properties': {
            'label': _STR
        },
        'additionalProperties': False
    },

    'generate_safe_prime': {
        '$schema': _DRAFT,
        'type': 'object',
        'properties': {
            'bits': {
                'type': 'integer',
                'minimum': 512
            }
        },
        'additionalProperties': False
    },

    'create_witness': {
        '$schema': _DRAFT,
        'type': 'object',
        'properties': {
            'credentialId': _STR
        },
        'required': ['credentialId'],
        'additionalProperties': False
    },

    'refresh_witness': {
        '$schema': _DRAFT,
        'type': 'object',
        'properties': {
            'witness': {
                'type': 'object',
                'properties': {
                    'revRegId': _STR,
                    'revocationId': _INDEX,
                    'version': {
                        'type': 'integer',
                        'minimum': 0
                    },
                    'state': _OBJ
                },
                'required': ['revRegId', 'revocationId', 'version', 'state']
            }
        },
        'required': ['witness'],
        'additionalProperties': False
    }
}


def validate(key: str, form: dict) -> None:
    """
    Validate input form against message schema on key; raise JSONValidation on non-compliance or silently pass.

    :param key: message schema key, as per operation name
    :param form: input form decoded from json
    """

    if key not in PROTO_MSG_JSON_SCHEMA:
        raise JSONValidation("Bad form: type '{}' unsupported".format(key))
    try:
        jsonschema.validate(form, PROTO_MSG_JSON_SCHEMA[key])
    except jsonschema.ValidationError as x_valid:
        raise JSONValidation('JSON validation error on {}: {}'.format(key, x_valid.message)) from x_valid
    except jsonschema.SchemaError as x_schema:
        raise JSONValidation('JSON schema error on {}: {}'.format(key, x_schema.message)) from x_schema
