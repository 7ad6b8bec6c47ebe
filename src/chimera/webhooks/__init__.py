"""
Webhooks package - HTTP handlers answering AdmissionReview requests.
"""

from .handler import AdmissionHandler, DecisionTypeError

__all__ = ["AdmissionHandler", "DecisionTypeError"]
