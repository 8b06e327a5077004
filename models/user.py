from pydantic import BaseModel
from typing import Optional
from azure.data.tables import TableEntity


class UserProfile(BaseModel):
    id: str
    email: Optional[str] = None
    displayName: Optional[str] = None
    stripeAccountId: Optional[str] = None
    platformDonationEnabled: bool = False
    platformDonationOneTimeCompleted: bool = False

    model_config = {
        "from_attributes": True
    }

    @property
    def name(self) -> str:
        return self.displayName or self.email or self.id


class UserProfileTableEntity(BaseModel):
    PartitionKey: str = "profile"
    RowKey: str
    email: Optional[str] = None
    displayName: Optional[str] = None
    stripeAccountId: Optional[str] = None
    platformDonationEnabled: bool = False
    platformDonationOneTimeCompleted: bool = False

    def to_profile(self) -> UserProfile:
        return UserProfile(id=self.RowKey, **self.model_dump(exclude={"PartitionKey", "RowKey"}))

    @classmethod
    def from_entity(cls, entity: TableEntity):
        entity_dict = dict(entity)
        table_entity = UserProfileTableEntity.model_validate(entity_dict)
        return table_entity
