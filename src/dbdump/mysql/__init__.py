"""MySQL/MariaDB wire client."""

from dbdump.mysql.client import MySQLClient, translate_error

__all__ = ["MySQLClient", "translate_error"]
