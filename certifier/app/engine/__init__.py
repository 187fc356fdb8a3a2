from .binder import HashBinder
from .codes import CodeCodec, DecodedCode
from .certificate import CertificateBuilder
from .verification import VerificationEngine, decode_payload

__all__ = [
    "HashBinder",
    "CodeCodec",
    "DecodedCode",
    "CertificateBuilder",
    "VerificationEngine",
    "decode_payload",
]
