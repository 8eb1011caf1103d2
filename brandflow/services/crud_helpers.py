from typing import Any, Generic, Iterable, TypeVar

from pydantic import BaseModel

ReadModel = TypeVar("ReadModel", bound=BaseModel)


class ListResult(BaseModel, Generic[ReadModel]):
    results: list[ReadModel]


def to_read(read_model: type[ReadModel], obj: Any) -> ReadModel:
    return read_model.model_validate(obj, from_attributes=True)


def to_list_result(
    read_model: type[ReadModel], objs: Iterable[Any]
) -> ListResult[ReadModel]:
    return ListResult(results=[to_read(read_model, o) for o in objs])
