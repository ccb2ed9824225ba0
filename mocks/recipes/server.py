"""
Mock recipe API server with in-memory recipes, shares and bearer-token users.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from shared.logging import get_logger


class _Camel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GenerateBody(_Camel):
    ingredients: List[str]
    dietary_restrictions: Optional[List[str]] = None


class SaveBody(_Camel):
    title: str = Field(min_length=1)
    ingredients: List[str]
    instructions: List[str] = Field(min_length=1)
    prep_time_minutes: Optional[int] = None
    cook_time_minutes: Optional[int] = None
    servings: Optional[int] = None


class ShareBody(_Camel):
    email: str


class MockRecipeServer:
    """Mock recipe API implementation."""

    def __init__(self):
        self.logger = get_logger("mock.recipes")
        self.app = FastAPI(title="Mock Recipe API", version="1.0.0")

        self.users: Dict[str, str] = {}
        self.tokens: Dict[str, str] = {}
        self.recipes: Dict[str, Dict[str, Any]] = {}
        self.shares: Dict[str, Dict[str, datetime]] = {}

        # (method, path, authorization header) for every request received
        self.requests: List[Tuple[str, str, Optional[str]]] = []
        self._failures: Dict[Tuple[str, str], List[Tuple[int, str]]] = {}

        self._setup_routes()

    def register_user(self, user_id: str, email: str, token: str) -> None:
        self.users[user_id] = email
        self.tokens[token] = user_id

    def add_recipe(self, owner_id: str, title: str, recipe_id: Optional[str] = None, **fields) -> Dict[str, Any]:
        recipe_id = recipe_id or str(uuid.uuid4())
        recipe = {
            "id": recipe_id,
            "ownerId": owner_id,
            "title": title,
            "ingredients": fields.get("ingredients", ["salt"]),
            "instructions": fields.get("instructions", ["Season to taste"]),
            "prepTimeMinutes": fields.get("prep_time_minutes"),
            "cookTimeMinutes": fields.get("cook_time_minutes"),
            "servings": fields.get("servings"),
            "createdAt": datetime.now(timezone.utc).isoformat(),
        }
        self.recipes[recipe_id] = recipe
        self.shares[recipe_id] = {}
        return recipe

    def fail_next(self, method: str, path: str, status_code: int = 500, message: str = "Database error") -> None:
        """Make the next ``method path`` request fail with ``status_code``."""
        self._failures.setdefault((method.upper(), path), []).append((status_code, message))

    def count_requests(self, method: str, path: str) -> int:
        return sum(1 for m, p, _ in self.requests if m == method.upper() and p == path)

    def _setup_routes(self):
        """Set up mock recipe routes."""

        @self.app.exception_handler(HTTPException)
        async def error_payload(request: Request, exc: HTTPException):
            return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

        @self.app.middleware("http")
        async def record_request(request: Request, call_next):
            key = (request.method, request.url.path)
            self.requests.append((request.method, request.url.path, request.headers.get("authorization")))
            queued = self._failures.get(key)
            if queued:
                status_code, message = queued.pop(0)
                return JSONResponse(status_code=status_code, content={"error": message})
            return await call_next(request)

        @self.app.get("/health")
        async def health():
            return "OK"

        @self.app.post("/api/recipes/generate")
        async def generate_recipe(body: GenerateBody):
            ingredients = [item.strip() for item in body.ingredients if item.strip()]
            if not ingredients:
                raise HTTPException(status_code=400, detail="At least one ingredient is required")
            title = " and ".join(item.title() for item in ingredients) + " Bowl"
            return {
                "title": title,
                "ingredients": ingredients,
                "instructions": [f"Prepare the {item}" for item in ingredients] + ["Combine and serve"],
                "prepTimeMinutes": 10,
                "cookTimeMinutes": 20,
                "servings": 2,
            }

        @self.app.get("/api/recipes/shared")
        async def list_shared_recipes(authorization: Optional[str] = Header(None)):
            user_id = self._authenticate(authorization)
            return [
                self._with_owner_email(recipe)
                for recipe_id, recipe in self.recipes.items()
                if user_id in self.shares.get(recipe_id, {})
            ]

        @self.app.post("/api/recipes")
        async def save_recipe(body: SaveBody, authorization: Optional[str] = Header(None)):
            user_id = self._authenticate(authorization)
            recipe = self.add_recipe(
                user_id,
                body.title,
                ingredients=body.ingredients,
                instructions=body.instructions,
                prep_time_minutes=body.prep_time_minutes,
                cook_time_minutes=body.cook_time_minutes,
                servings=body.servings,
            )
            self.logger.debug("Mock recipe saved", recipe_id=recipe["id"], owner_id=user_id)
            return recipe

        @self.app.get("/api/recipes")
        async def list_my_recipes(authorization: Optional[str] = Header(None)):
            user_id = self._authenticate(authorization)
            return [recipe for recipe in self.recipes.values() if recipe["ownerId"] == user_id]

        @self.app.get("/api/recipes/{recipe_id}")
        async def get_recipe(recipe_id: str, authorization: Optional[str] = Header(None)):
            user_id = self._authenticate(authorization)
            recipe = self._find(recipe_id)
            if recipe["ownerId"] != user_id and user_id not in self.shares[recipe_id]:
                raise HTTPException(status_code=403, detail="Access denied")
            return self._with_owner_email(recipe)

        @self.app.get("/api/recipes/{recipe_id}/shares")
        async def list_recipe_shares(recipe_id: str, authorization: Optional[str] = Header(None)):
            self._require_owner(recipe_id, authorization)
            return [
                {"userId": grantee, "email": self.users.get(grantee, ""), "createdAt": granted_at.isoformat()}
                for grantee, granted_at in self.shares[recipe_id].items()
            ]

        @self.app.post("/api/recipes/{recipe_id}/shares", status_code=201)
        async def create_share(recipe_id: str, body: ShareBody, authorization: Optional[str] = Header(None)):
            self._require_owner(recipe_id, authorization)
            grantee = next((uid for uid, email in self.users.items() if email == body.email), None)
            if grantee is None:
                raise HTTPException(status_code=404, detail="User not found")
            self.shares[recipe_id][grantee] = datetime.now(timezone.utc)
            return Response(status_code=201)

        @self.app.delete("/api/recipes/{recipe_id}/shares/{user_id}", status_code=204)
        async def delete_share(recipe_id: str, user_id: str, authorization: Optional[str] = Header(None)):
            self._require_owner(recipe_id, authorization)
            self.shares[recipe_id].pop(user_id, None)
            return Response(status_code=204)

    def _authenticate(self, authorization: Optional[str]) -> str:
        if not authorization or not authorization.startswith("Bearer "):
            raise HTTPException(status_code=401, detail="Unauthorized")
        user_id = self.tokens.get(authorization[len("Bearer "):])
        if user_id is None:
            raise HTTPException(status_code=401, detail="Invalid token")
        return user_id

    def _find(self, recipe_id: str) -> Dict[str, Any]:
        recipe = self.recipes.get(recipe_id)
        if recipe is None:
            raise HTTPException(status_code=404, detail="Recipe not found")
        return recipe

    def _require_owner(self, recipe_id: str, authorization: Optional[str]) -> str:
        user_id = self._authenticate(authorization)
        if self._find(recipe_id)["ownerId"] != user_id:
            raise HTTPException(status_code=403, detail="Access denied")
        return user_id

    def _with_owner_email(self, recipe: Dict[str, Any]) -> Dict[str, Any]:
        return {**recipe, "ownerEmail": self.users.get(recipe["ownerId"])}


def create_app():
    """Create mock recipe application."""
    server = MockRecipeServer()
    return server.app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=3000)
