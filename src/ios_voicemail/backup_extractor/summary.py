"""Summary of an extraction run for reporting."""

from collections import Counter
from typing import Any, Dict

from .models import ExtractionResult


def generate_summary(result: ExtractionResult) -> Dict[str, Any]:
    """Build a JSON-serializable summary of an extraction result.

    Args:
        result: Extraction result

    Returns:
        Dict with ``backup``, ``counts``, ``failures_by_category`` and
        ``formats`` sections
    """
    descriptor = result.descriptor
    formats = Counter(payload.format.description for payload in result.payloads)
    categories = Counter(failure.category for failure in result.failures)

    return {
        'backup': {
            'identifier': descriptor.identifier,
            'device': descriptor.device_description,
            'device_name': descriptor.device_name,
            'product_version': descriptor.product_version,
            'last_backup_at': descriptor.last_backup_at.isoformat() if descriptor.last_backup_at else None,
            'path': str(descriptor.path),
        },
        'working_directory': str(result.working_directory),
        'attribute_store_available': result.attribute_store_available,
        'counts': {
            'payloads': len(result.payloads),
            'matched': len(result.matched_payloads),
            'audio_without_metadata': len(result.unmatched_payloads),
            'metadata_without_audio': len(result.surplus_records),
            'failures': len(result.failures),
            'total_bytes': sum(payload.size_bytes for payload in result.payloads),
        },
        'failures_by_category': dict(categories),
        'formats': dict(formats),
    }
