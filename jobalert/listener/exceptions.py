"""Change feed exceptions."""


class ChangeFeedError(Exception):
    """Raised when the change feed cannot be read or acknowledged.

    The listener treats this as a disconnect: it backs off and resubscribes
    from the last saved resume token.
    """

    pass


class ChangeFeedUnavailableError(ChangeFeedError):
    """Raised at startup when the store cannot provide an ordered change feed.

    Fatal: the matching service has nothing to consume without it.
    """

    pass
