from __future__ import annotations

from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field


class UserCreateModel(BaseModel):
    name: str = ""
    email: str = ""
    password: str = ""
    employeeId: str = ""
    role: str = ""
    roles: List[str] = Field(default_factory=list)
    branch: Optional[Union[str, List[str]]] = None
    cluster: Optional[Union[str, List[str]]] = None


class UserPublicModel(BaseModel):
    id: str
    name: str
    email: str
    employeeId: str
    role: str
    roles: List[str] = Field(default_factory=list)
    branch: Optional[str] = None
    cluster: Optional[str] = None


class UserListResponse(BaseModel):
    success: bool = True
    users: List[UserPublicModel]


class UserResponse(BaseModel):
    success: bool = True
    message: str = ""
    user: UserPublicModel


class ClusterMapResponse(BaseModel):
    success: bool = True
    clusters: Dict[str, List[str]]
