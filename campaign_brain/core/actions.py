from __future__ import annotations
from typing import Annotated, Any, Dict, FrozenSet, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field

# Wire names are a contract with the executor; never rename them.
GET_CAMPAIGN_STATUS = "GetCampaignStatus"
PAUSE_CAMPAIGN = "PauseCampaign"
UPDATE_ADSET_DAILY_BUDGET = "UpdateAdSetDailyBudget"

ACTION_TYPES: FrozenSet[str] = frozenset(
    {GET_CAMPAIGN_STATUS, PAUSE_CAMPAIGN, UPDATE_ADSET_DAILY_BUDGET}
)

# Budgets are integer cents; 10000 == 100 USD.
MAX_DAILY_BUDGET_CENTS = 10000


class CampaignRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    campaign_id: str = Field(min_length=1)


class PauseParams(CampaignRef):
    status: Literal["PAUSED"] = "PAUSED"


class BudgetParams(BaseModel):
    model_config = ConfigDict(frozen=True)

    adset_id: str = Field(min_length=1)
    daily_budget: int = Field(le=MAX_DAILY_BUDGET_CENTS)


class GetCampaignStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["GetCampaignStatus"] = GET_CAMPAIGN_STATUS
    params: CampaignRef


class PauseCampaign(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["PauseCampaign"] = PAUSE_CAMPAIGN
    params: PauseParams


class UpdateAdSetDailyBudget(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["UpdateAdSetDailyBudget"] = UPDATE_ADSET_DAILY_BUDGET
    params: BudgetParams


Action = Annotated[
    Union[GetCampaignStatus, PauseCampaign, UpdateAdSetDailyBudget],
    Field(discriminator="type"),
]


def dump_actions(actions: List[Any]) -> List[Dict[str, Any]]:
    """Serialize validated actions to their wire form."""
    return [a.model_dump() for a in actions]


class Plan(BaseModel):
    """Reasoning-engine proposal. `actions` is raw and untrusted until validated."""

    model_config = ConfigDict(populate_by_name=True)

    plan_note: Optional[str] = Field(default=None, alias="planNote")
    actions: List[Any] = Field(default_factory=list)

    @classmethod
    def disabled(cls) -> "Plan":
        return cls(plan_note=None, actions=[])


class AccountRef(BaseModel):
    user_account_id: str = Field(alias="userAccountId")

    model_config = ConfigDict(populate_by_name=True)


class ExecutorRequest(BaseModel):
    """Body posted to the executor for one dispatch."""

    model_config = ConfigDict(populate_by_name=True)

    idempotency_key: str = Field(alias="idempotencyKey")
    source: str = "n8n"
    account: AccountRef
    actions: List[Action]

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)
