"""courier: 逐次送信キューとティア別レート制限."""

__version__ = "0.1.0"
