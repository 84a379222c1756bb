from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class APIModel(BaseModel):
    """백엔드(JSON camelCase) <-> 파이썬(snake_case) 공통 베이스.

    frozen: 스토어에 들어간 객체는 그대로 롤백 스냅샷으로 쓰이므로 수정 불가.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        frozen=True,
    )

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
