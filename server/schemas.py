from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

# ---- HTTP bodies ----


class RoomSettingsModel(BaseModel):
    starting_money: int = Field(15000, ge=0)
    go_salary: int = Field(2000, ge=0)
    jail_fine: int = Field(500, ge=0)
    free_parking_jackpot: bool = False
    auction_enabled: bool = True


class CreateRoomRequest(BaseModel):
    host_name: str = Field(min_length=1, max_length=20)
    is_public: bool = True
    max_players: int = Field(4, ge=2, le=8)
    settings: RoomSettingsModel = Field(default_factory=RoomSettingsModel)


class JoinRoomRequest(BaseModel):
    name: str = Field(min_length=1, max_length=20)


class PlayerRequest(BaseModel):
    player_id: str


class ReadyRequest(BaseModel):
    player_id: str
    ready: bool = True


class LoadRequest(BaseModel):
    snapshot: Optional[Dict[str, Any]] = None


class ParticipantOut(BaseModel):
    player_id: str
    name: str
    is_ready: bool
    is_host: bool
    connected: bool


class RoomOut(BaseModel):
    code: str
    host_id: str
    participants: List[ParticipantOut]
    is_public: bool
    max_players: int
    status: str
    created_at: float
    settings: RoomSettingsModel


class JoinRoomResponse(BaseModel):
    room_code: str
    player_id: str
    room: RoomOut


class RoomSummary(BaseModel):
    code: str
    player_count: int
    max_players: int
    status: str
    is_public: bool
    host_name: Optional[str] = None


class RoomListResponse(BaseModel):
    rooms: List[RoomSummary]


class SaveResponse(BaseModel):
    room_code: str
    saved: bool
    version: int


# ---- WebSocket intents ----


class _Intent(BaseModel):
    model_config = ConfigDict(extra="forbid")


class IdentifyIntent(_Intent):
    action: Literal["identify"]
    player_id: Optional[str] = None


class RollIntent(_Intent):
    action: Literal["roll"]


class BuyIntent(_Intent):
    action: Literal["buy"]


class DeclineIntent(_Intent):
    action: Literal["decline"]


class StartAuctionIntent(_Intent):
    action: Literal["start_auction"]


class BuildIntent(_Intent):
    action: Literal["build"]
    position: int = Field(ge=0, le=39)


class SellBuildingIntent(_Intent):
    action: Literal["sell_building"]
    position: int = Field(ge=0, le=39)


class MortgageIntent(_Intent):
    action: Literal["mortgage"]
    position: int = Field(ge=0, le=39)


class UnmortgageIntent(_Intent):
    action: Literal["unmortgage"]
    position: int = Field(ge=0, le=39)


class ProposeTradeIntent(_Intent):
    action: Literal["propose_trade"]
    to_player: str
    offered_money: int = Field(0, ge=0)
    requested_money: int = Field(0, ge=0)
    offered_properties: List[int] = Field(default_factory=list)
    requested_properties: List[int] = Field(default_factory=list)


class RespondTradeIntent(_Intent):
    action: Literal["respond_trade"]
    trade_id: str
    accept: bool


class CancelTradeIntent(_Intent):
    action: Literal["cancel_trade"]
    trade_id: str


class BidIntent(_Intent):
    action: Literal["bid"]
    amount: int = Field(gt=0)


class EndAuctionIntent(_Intent):
    action: Literal["end_auction"]


class EndTurnIntent(_Intent):
    action: Literal["end_turn"]


class PayJailFineIntent(_Intent):
    action: Literal["pay_jail_fine"]


class UseJailCardIntent(_Intent):
    action: Literal["use_jail_card"]


class PayDebtIntent(_Intent):
    action: Literal["pay_debt"]


class BankruptIntent(_Intent):
    action: Literal["bankrupt"]
    creditor_id: Optional[str] = None


class SnapshotIntent(_Intent):
    action: Literal["snapshot"]


Intent = Annotated[
    Union[
        IdentifyIntent,
        RollIntent,
        BuyIntent,
        DeclineIntent,
        StartAuctionIntent,
        BuildIntent,
        SellBuildingIntent,
        MortgageIntent,
        UnmortgageIntent,
        ProposeTradeIntent,
        RespondTradeIntent,
        CancelTradeIntent,
        BidIntent,
        EndAuctionIntent,
        EndTurnIntent,
        PayJailFineIntent,
        UseJailCardIntent,
        PayDebtIntent,
        BankruptIntent,
        SnapshotIntent,
    ],
    Field(discriminator="action"),
]

intent_adapter: TypeAdapter = TypeAdapter(Intent)
