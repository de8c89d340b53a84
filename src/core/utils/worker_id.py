"""Worker ID generation using coolnames for unique, memorable identifiers."""

from coolname import generate_slug


def generate_worker_id(prefix: str = "") -> str:
    """Generate a unique, memorable worker ID using coolnames.

    Used as the Kafka client id suffix and as the ``worker_id`` log context so
    that several relay processes sharing a consumer group stay distinguishable.

    Examples:
        >>> generate_worker_id()
        'brave-golden-tiger'
        >>> generate_worker_id("relay-dlq")
        'relay-dlq-swift-blue-falcon'
    """
    slug = generate_slug(3)
    return f"{prefix}-{slug}" if prefix else slug
