"""courier の基底例外."""


class CourierError(Exception):
    """courier 関連の基底例外."""

    pass
