"""
Inbound WebSocket action payloads.

Every client message is validated against one of these models before it
reaches the game. A payload that does not validate is treated like any
other illegal action: ignored without a reply.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ActionMessage(BaseModel):
    """Base for all room-scoped actions. Unknown keys are ignored."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class JoinGameMessage(ActionMessage):
    room_id: str = Field(alias="roomId", min_length=1, max_length=16)
    player_name: str = Field(default="Player", alias="playerName", max_length=32)


class PlayerReadyMessage(ActionMessage):
    pass


class DrawDeckMessage(ActionMessage):
    pass


class DrawDiscardMessage(ActionMessage):
    hand_index: int = Field(alias="handIndex", ge=0)


class SwapDrawnCardMessage(ActionMessage):
    hand_index: int = Field(alias="handIndex", ge=0)


class DiscardDrawnCardMessage(ActionMessage):
    pass


class CallStackMessage(ActionMessage):
    pass


class ExecuteStackMessage(ActionMessage):
    target_player_id: str = Field(alias="targetPlayerId")
    hand_index: int = Field(alias="handIndex", ge=0)
    offensive_give_index: Optional[int] = Field(default=None, alias="offensiveGiveIndex", ge=0)


class AbilityTargetData(ActionMessage):
    """
    Targets chosen for an ability.

    King uses my_index + opponent_id/opp_index, Jack phase 1 uses my_index,
    8 uses opponent_id/opp_index and 6 uses my_index.
    """

    my_index: Optional[int] = Field(default=None, alias="myIndex", ge=0)
    opponent_id: Optional[str] = Field(default=None, alias="opponentId")
    opp_index: Optional[int] = Field(default=None, alias="oppIndex", ge=0)


class PlayAbilityTargetMessage(ActionMessage):
    ability_type: Literal["K", "J", "8", "6"] = Field(alias="type")
    target_data: AbilityTargetData = Field(default_factory=AbilityTargetData, alias="targetData")


class JackRespondMessage(ActionMessage):
    my_index: int = Field(alias="myIndex", ge=0)


class CallItMessage(ActionMessage):
    pass


class PlayAgainMessage(ActionMessage):
    pass
