"""Canvas components stored by the workflow editor.

Shape validation only: geometry and colours are carried through untouched.
Components are discriminated by ``componentType`` and keep any extra fields
the editor sends.
"""

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class Point(BaseModel):
    x: float
    y: float


class _ComponentBase(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: int
    document_id: str | None = Field(default=None, alias="_id")

    def to_record(self) -> dict:
        """Dump to the stored document shape (``_id`` only when assigned)."""
        return self.model_dump(by_alias=True, exclude_none=True)


class LineAttributes(BaseModel):
    start: Point
    end: Point


class LineComponent(_ComponentBase):
    component_type: Literal["Line"] = Field(alias="componentType")
    line_attr: LineAttributes = Field(alias="lineAttr")


class RectangleAttributes(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    label: str | None = None
    background_color: str = Field(alias="backgroundColor")
    width: float
    height: float
    start: Point


class RectangleComponent(_ComponentBase):
    component_type: Literal["Rectangle"] = Field(alias="componentType")
    rectangle_attr: RectangleAttributes = Field(alias="rectangleAttr")


class ConnectionEndpoint(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    rectangle_id: int = Field(alias="rectangleId")
    rectangle_point_location: Point = Field(alias="rectanglePointLocation")


class ConnectionAttributes(BaseModel):
    start: ConnectionEndpoint
    end: ConnectionEndpoint | None = None


class ConnectionComponent(_ComponentBase):
    component_type: Literal["Connection"] = Field(alias="componentType")
    connection_attr: ConnectionAttributes = Field(alias="connectionAttr")


CanvasComponent = Annotated[
    RectangleComponent | LineComponent | ConnectionComponent,
    Field(discriminator="component_type"),
]

canvas_components_adapter: TypeAdapter[list[CanvasComponent]] = TypeAdapter(list[CanvasComponent])


class ComponentId(BaseModel):
    """Body element of a delete request."""

    model_config = ConfigDict(populate_by_name=True)

    document_id: str = Field(alias="_id", min_length=1)


component_ids_adapter: TypeAdapter[list[ComponentId]] = TypeAdapter(list[ComponentId])
