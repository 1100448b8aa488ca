"""Fingerprints identifying cacheable units of work."""

from src.core.hashing import stable_hash


def compute_fingerprint(
    configuration_hash: str,
    resource_id: str,
    step: str,
    input_hash: str,
) -> str:
    """Compute the cache fingerprint for one step over one resource.

    Identical fingerprints must imply identical outputs, so every argument
    that can change a result has to be part of the hash.

    Args:
        configuration_hash: Hash of the resolved configuration.
        resource_id: Stable identity of the resource (its slug).
        step: Step name.
        input_hash: Hash of everything the step reads.

    Returns:
        Hex-encoded SHA-256 fingerprint.
    """
    return stable_hash(
        {
            "configuration": configuration_hash,
            "resource": resource_id,
            "step": step,
            "input": input_hash,
        }
    )
