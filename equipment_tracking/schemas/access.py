from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict


class RoleUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    role: Literal["leitor", "editor", "desenvolvedor"]
    email: Optional[str] = None
