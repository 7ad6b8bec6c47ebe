"""
Constants used throughout the admission webhook kit.

This module defines:
- Admission protocol versions and wire constants
- Certificate generation defaults
- Naming and path conventions for registered webhooks
"""

# Admission protocol
ADMISSION_REVIEW_API_VERSION = "admission.k8s.io/v1"
ADMISSION_REVIEW_KIND = "AdmissionReview"
ADMISSION_REVIEW_VERSIONS = ["v1"]
SIDE_EFFECTS_NONE = "None"
FAILURE_POLICY_FAIL = "Fail"
FAILURE_POLICY_IGNORE = "Ignore"
FAILURE_POLICIES = frozenset({FAILURE_POLICY_FAIL, FAILURE_POLICY_IGNORE})
JSON_CONTENT_TYPE = "application/json"

# Callback addressing
DEFAULT_CALLBACK_HOST = "localhost"
DEFAULT_CALLBACK_PORT = 8443
LOOPBACK_ALIASES = frozenset({"localhost", "127.0.0.1"})
LOOPBACK_DNS_NAME = "localhost"
LOOPBACK_IPV4 = "127.0.0.1"
LOOPBACK_IPV6 = "::1"

# Webhook naming
SYNTHESIZED_NAME_PREFIX = "rule"
VALIDATE_PATH_PREFIX = "/validate-"

# Certificate generation
CERTIFICATE_VALIDITY_DAYS = 365
CA_KEY_SIZE = 2048
# 1024 is accepted for test clusters but rejected by OpenSSL security level 2,
# which most distributions ship as the default for Python's ssl module.
MIN_SERVING_KEY_SIZE = 1024
DEFAULT_SERVING_KEY_SIZE = 2048
RSA_PUBLIC_EXPONENT = 65537
DEFAULT_CA_COMMON_NAME = "chimera-admission-ca"

# Generated file naming and permissions
TEMP_CA_CERT_PATTERN = ("validating-webhook-ca", ".crt")
TEMP_CERT_PATTERN = ("validating-webhook-", ".crt")
TEMP_KEY_PATTERN = ("validating-webhook-", ".key")
CERT_FILE_MODE = 0o644
KEY_FILE_MODE = 0o600

# Registration retry defaults
REGISTRATION_INITIAL_BACKOFF_SECONDS = 0.5
REGISTRATION_MAX_BACKOFF_SECONDS = 30.0
REGISTRATION_BACKOFF_FACTOR = 2.0
