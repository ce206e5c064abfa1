from dataclasses import dataclass
from typing import Optional

import pytest
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Field, Session, SQLModel, create_engine

from routekit import (
    AuthorizationResponse,
    Controller,
    Dispatcher,
    Gate,
    RequestInput,
    Settings,
    create_app,
    request_input,
    resolve_controller,
)

TEST_DATABASE_URL = "sqlite:///:memory:"

# ============================================================================
# Test Database Setup with StaticPool
# ============================================================================
# sqlite:///:memory: with StaticPool so all sessions share one database;
# check_same_thread=False is required for TestClient's worker thread.
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


def get_session():
    with Session(test_engine) as session:
        yield session


# ============================================================================
# Sample domain: users editing posts
# ============================================================================


class Post(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int
    title: str
    body: Optional[str] = None


@dataclass
class User:
    id: int
    is_admin: bool = False


USERS = {
    1: User(id=1),
    2: User(id=2),
    3: User(id=3, is_admin=True),
}


class PostPolicy:
    def update(self, user: User, post: Post):
        return post.user_id == user.id

    def delete(self, user: User, post: Post):
        if user.is_admin:
            return AuthorizationResponse.allow()
        return AuthorizationResponse.deny("Only administrators may delete posts.", "posts.delete")


@dataclass
class CreatePost:
    session: Session
    user_id: int
    title: str
    body: Optional[str]

    def handle(self):
        post = Post(user_id=self.user_id, title=self.title, body=self.body)
        self.session.add(post)
        self.session.commit()
        self.session.refresh(post)
        return post.model_dump()


@dataclass
class UpdatePost:
    session: Session
    post: Post
    title: str
    body: Optional[str]

    def handle(self):
        self.post.title = self.title
        self.post.body = self.body
        self.session.add(self.post)
        self.session.commit()
        self.session.refresh(self.post)
        return self.post.model_dump()


POST_RULES = {
    "title": ["required", "string", "max:80"],
    "body": "nullable|string",
}


class PostController(Controller):
    def store(self, request: RequestInput, session: Session, user: User):
        self.authorize("create")
        self.validate(request, POST_RULES, {"title.required": "Every post needs a title."})
        return self.dispatch(CreatePost(session, user.id, request.input("title"), request.input("body")))

    def update(self, request: RequestInput, session: Session, post: Post):
        self.authorize(post)
        self.validate(request, POST_RULES)
        return self.dispatch(UpdatePost(session, post, request.input("title"), request.input("body")))

    def destroy(self, session: Session, post: Post):
        self.authorize("delete", post)
        post_id = post.id
        session.delete(post)
        session.commit()
        return {"deleted": post_id}


def build_gate() -> Gate:
    gate = Gate()
    gate.define("create", lambda user: True)
    gate.policy(Post, PostPolicy())
    return gate


def build_app() -> FastAPI:
    app = create_app(Settings(app_name="routekit-test"), gate=build_gate(), dispatcher=Dispatcher())

    @app.middleware("http")
    async def authenticate(request, call_next):
        user_id = request.headers.get("x-user-id")
        request.state.user = USERS.get(int(user_id)) if user_id else None
        return await call_next(request)

    posts = resolve_controller(PostController)

    def find_post(post_id: int, session: Session) -> Post:
        post = session.get(Post, post_id)
        if not post:
            raise HTTPException(status_code=404, detail="Post not found")
        return post

    @app.post("/api/posts", status_code=201)
    def create_post(
        request: Request,
        data: RequestInput = Depends(request_input),
        controller: PostController = Depends(posts),
        session: Session = Depends(get_session),
    ):
        return controller.store(data, session, getattr(request.state, "user", None))

    @app.put("/api/posts/{post_id}")
    def update_post(
        post_id: int,
        data: RequestInput = Depends(request_input),
        controller: PostController = Depends(posts),
        session: Session = Depends(get_session),
    ):
        return controller.update(data, session, find_post(post_id, session))

    @app.delete("/api/posts/{post_id}")
    def delete_post(
        post_id: int,
        controller: PostController = Depends(posts),
        session: Session = Depends(get_session),
    ):
        return controller.destroy(session, find_post(post_id, session))

    return app


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture(name="session")
def session_fixture():
    """Provide a session on a freshly created schema"""
    SQLModel.metadata.create_all(test_engine)

    with Session(test_engine) as session:
        yield session

    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture(name="app")
def app_fixture():
    return build_app()


@pytest.fixture(name="client")
def client_fixture(app: FastAPI, session: Session):
    with TestClient(app) as client:
        yield client


@pytest.fixture
def make_post(session: Session):
    def _make_post(user_id: int, title: str = "First post", body: Optional[str] = None) -> Post:
        post = Post(user_id=user_id, title=title, body=body)
        session.add(post)
        session.commit()
        session.refresh(post)
        return post

    return _make_post
