"""Network lookups used by the dynamic checks and deep validation."""

from .doh import DohResolver, parse_mx_answers
from .mail_queue import MailLookupQueue
from .rdap import RdapClient, parse_registration_date

__all__ = [
    "DohResolver",
    "MailLookupQueue",
    "RdapClient",
    "parse_mx_answers",
    "parse_registration_date",
]
