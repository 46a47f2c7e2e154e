from pydantic import BaseModel, ConfigDict, Field


class TrialCreditBalance(BaseModel):
    model_config = ConfigDict(frozen=True)

    account_id: str
    remaining_credits: int = Field(ge=0)
    purchase_count: int = Field(ge=0)
