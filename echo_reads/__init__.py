"""Echo Reads: social book tracking.

Members keep a reading library, review books, follow each other, curate
collections and upgrade to a premium subscription billed through Stripe.
"""


def create_app(config=None):
    """WSGI factory (``flask --app echo_reads:create_app run``)."""
    from echo_reads.startup.wiring import create_app as _create_app

    return _create_app(config)


__all__ = ["create_app"]
