"""
Meta functionality for the database.
"""

from .borrow import BorrowRequest, Loan
from .group import Group, GroupMembership
from .resource import Resource, ResourceGroupShare
from .user import User

ALL_TABLES = (
    User,
    Resource,
    ResourceGroupShare,
    Group,
    GroupMembership,
    BorrowRequest,
    Loan,
)
