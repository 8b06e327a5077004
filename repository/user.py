from typing import Optional
from azure.core.exceptions import ResourceNotFoundError
from azure.data.tables import UpdateMode
from managers.table_manager import TableConnectionManager, USER_PROFILES
from models.user import UserProfile, UserProfileTableEntity

PROFILE_PARTITION = "profile"


def get_profile(user_id: str) -> Optional[UserProfile]:
    manager = TableConnectionManager()
    try:
        entity = manager.get_table(USER_PROFILES).get_entity(partition_key=PROFILE_PARTITION, row_key=user_id)
        return UserProfileTableEntity.from_entity(entity).to_profile()
    except ResourceNotFoundError:
        return None


def mark_one_time_donation(artist_id: str) -> None:
    """Flag the artist as having completed the one-time platform donation"""
    manager = TableConnectionManager()
    manager.get_table(USER_PROFILES).upsert_entity(
        {
            "PartitionKey": PROFILE_PARTITION,
            "RowKey": artist_id,
            "platformDonationOneTimeCompleted": True,
            "platformDonationEnabled": True,
            "platformDonationType": "one-time",
        },
        mode=UpdateMode.MERGE,
    )
