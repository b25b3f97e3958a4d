"""
Application controller.

All user actions go through PortfolioController.dispatch(state, action, ...),
which looks the action up in one handler table. Session data lives in an
explicit AppState; nothing is kept in module globals. Notifications (alerts,
toasts, confirmations) are delivered to registered observers and collected on
the returned Outcome.
"""
import threading
import time
from collections import OrderedDict
from dataclasses import asdict, dataclass, field
from enum import Enum

from loguru import logger

from rendering.services import DEFAULT_THEME, Template, render, resolve_theme

from .editor import EditBuffer, GroupKind, PictureState
from .errors import AuthError, ImportFormatError, PortfolioError, PortfolioNotFound
from .model import sort_by_last_modified, to_public
from .transfer import export_json, parse_import
from .validator import validate_portfolio


class View(str, Enum):
    LOGIN = "login"
    DASHBOARD = "dashboard"
    EDITOR = "editor"
    PREVIEW = "preview"


class Action(str, Enum):
    SIGN_IN = "sign_in"
    SIGN_OUT = "sign_out"
    NAVIGATE = "navigate"
    CREATE_NEW = "create_new"
    EDIT = "edit"
    STEP = "step"
    SET_FIELD = "set_field"
    ADD_ITEM = "add_item"
    UPDATE_ITEM = "update_item"
    REMOVE_ITEM = "remove_item"
    MOVE_ITEM = "move_item"
    SELECT_PICTURE = "select_picture"
    REMOVE_PICTURE = "remove_picture"
    SAVE = "save"
    REQUEST_DELETE = "request_delete"
    CONFIRM = "confirm"
    CANCEL = "cancel"
    DELETE = "delete"
    PREVIEW = "preview"
    EXPORT = "export"
    IMPORT = "import"
    SHARE = "share"
    UNSHARE = "unshare"
    SET_THEME = "set_theme"
    AI_IMPROVE = "ai_improve"
    AI_BULLETS = "ai_bullets"
    AI_DRAFT = "ai_draft"
    AI_APPLY = "ai_apply"


# Actions allowed without a signed-in user.
PUBLIC_ACTIONS = {Action.SIGN_IN, Action.SIGN_OUT, Action.SET_THEME}

# Actions that talk to an external service and must not run twice at once.
GUARDED_ACTIONS = {
    Action.SAVE,
    Action.DELETE,
    Action.CONFIRM,
    Action.IMPORT,
    Action.SHARE,
    Action.UNSHARE,
    Action.AI_IMPROVE,
    Action.AI_BULLETS,
    Action.AI_DRAFT,
}


@dataclass
class Notification:
    kind: str           # alert | toast | confirm
    message: str
    title: str = ""
    level: str = "info"


class Observable:
    """Explicit callback registration."""

    def __init__(self):
        self._callbacks = []

    def subscribe(self, callback):
        self._callbacks.append(callback)

        def unsubscribe():
            if callback in self._callbacks:
                self._callbacks.remove(callback)
        return unsubscribe

    def emit(self, *args):
        for callback in list(self._callbacks):
            callback(*args)


@dataclass
class AppState:
    user: object = None
    view: View = View.LOGIN
    editing_id: str = None
    portfolios: list = field(default_factory=list)
    editor: EditBuffer = field(default_factory=EditBuffer)
    preview: dict = None
    pending: tuple = None
    theme: str = DEFAULT_THEME
    in_flight: set = field(default_factory=set)
    observers: Observable = field(default_factory=Observable, repr=False)
    lock: object = field(default_factory=threading.Lock, repr=False, compare=False)

    def begin(self, action: Action) -> bool:
        with self.lock:
            if action in self.in_flight:
                return False
            self.in_flight.add(action)
            return True

    def finish(self, action: Action):
        with self.lock:
            self.in_flight.discard(action)


@dataclass
class Outcome:
    action: Action
    ok: bool = True
    status: int = 200
    view: str = ""
    data: dict = field(default_factory=dict)
    errors: list = field(default_factory=list)
    notifications: list = field(default_factory=list)

    def fail(self, status: int, errors: list = None):
        self.ok = False
        self.status = status
        if errors:
            self.errors = errors

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "action": self.action.value,
            "view": self.view,
            "data": self.data,
            "errors": self.errors,
            "notifications": [asdict(n) for n in self.notifications],
        }


def _status_for(exc: PortfolioError) -> int:
    if isinstance(exc, PortfolioNotFound):
        return 404
    if isinstance(exc, ImportFormatError):
        return 400
    if isinstance(exc, AuthError):
        return 401
    return 502


class SessionRegistry:
    """
    Server-side AppState per browser session; the edit buffer can hold an inline image.

    Sessions idle for longer than `ttl` seconds are dropped, and when more than
    `max_sessions` are held the least recently used one goes first.
    """

    def __init__(self, factory=AppState, max_sessions: int = 1000, ttl: float = 3600, clock=time.monotonic):
        self._lock = threading.Lock()
        self._states = OrderedDict()   # key -> (last_seen, AppState), oldest first
        self.factory = factory
        self.max_sessions = max_sessions
        self.ttl = ttl
        self.clock = clock

    def __len__(self):
        with self._lock:
            return len(self._states)

    def _evict(self, now: float):
        while self._states:
            key, (last_seen, _) = next(iter(self._states.items()))
            if now - last_seen <= self.ttl and len(self._states) <= self.max_sessions:
                break
            del self._states[key]
            logger.debug("Evicted session state {}", key[:8])

    def get(self, key: str) -> AppState:
        """Return the state for `key`, creating it if needed."""
        with self._lock:
            now = self.clock()
            entry = self._states.pop(key, None)
            state = entry[1] if entry and now - entry[0] <= self.ttl else self.factory()
            self._states[key] = (now, state)
            self._evict(now)
            return state

    def peek(self, key: str):
        """Return the live state for `key` without creating one."""
        with self._lock:
            now = self.clock()
            self._evict(now)
            entry = self._states.pop(key, None)
            if entry is None:
                return None
            self._states[key] = (now, entry[1])
            return entry[1]

    def discard(self, key: str):
        with self._lock:
            self._states.pop(key, None)


class PortfolioController:
    def __init__(self, store, identity, assistant, uploader, strict_validation=False,
                 default_template=Template.MODERN.value, default_theme=DEFAULT_THEME):
        self.store = store
        self.identity = identity
        self.assistant = assistant
        self.uploader = uploader
        self.strict_validation = strict_validation
        self.default_template = Template.resolve(default_template).value
        self.default_theme = resolve_theme(default_theme)
        self.notifications = Observable()
        self.user_changed = Observable()
        self._handlers = {
            Action.SIGN_IN: self._sign_in,
            Action.SIGN_OUT: self._sign_out,
            Action.NAVIGATE: self._navigate,
            Action.CREATE_NEW: self._create_new,
            Action.EDIT: self._edit,
            Action.STEP: self._step,
            Action.SET_FIELD: self._set_field,
            Action.ADD_ITEM: self._add_item,
            Action.UPDATE_ITEM: self._update_item,
            Action.REMOVE_ITEM: self._remove_item,
            Action.MOVE_ITEM: self._move_item,
            Action.SELECT_PICTURE: self._select_picture,
            Action.REMOVE_PICTURE: self._remove_picture,
            Action.SAVE: self._save,
            Action.REQUEST_DELETE: self._request_delete,
            Action.CONFIRM: self._confirm,
            Action.CANCEL: self._cancel,
            Action.DELETE: self._delete,
            Action.PREVIEW: self._preview,
            Action.EXPORT: self._export,
            Action.IMPORT: self._import,
            Action.SHARE: self._share,
            Action.UNSHARE: self._unshare,
            Action.SET_THEME: self._set_theme,
            Action.AI_IMPROVE: self._ai_improve,
            Action.AI_BULLETS: self._ai_bullets,
            Action.AI_DRAFT: self._ai_draft,
            Action.AI_APPLY: self._ai_apply,
        }

    def new_state(self) -> AppState:
        return AppState(theme=self.default_theme, editor=EditBuffer(strict=self.strict_validation))

    # ------------------ DISPATCH ------------------

    def dispatch(self, state: AppState, action, **payload) -> Outcome:
        action = Action(action)
        outcome = Outcome(action=action)

        if action not in PUBLIC_ACTIONS and state.user is None:
            outcome.fail(401)
            self._alert(state, outcome, "Not Signed In", "Please sign in to continue.")
            outcome.view = state.view.value
            return outcome

        guarded = action in GUARDED_ACTIONS
        if guarded and not state.begin(action):
            outcome.fail(409)
            self._toast(state, outcome, "That action is already in progress.", "info")
            outcome.view = state.view.value
            return outcome

        try:
            self._handlers[action](state, outcome, **payload)
        except PortfolioError as exc:
            logger.error("{} failed: {}", action.value, exc)
            outcome.fail(_status_for(exc))
            self._alert(state, outcome, exc.title, str(exc))
        finally:
            if guarded:
                state.finish(action)

        outcome.view = state.view.value
        return outcome

    # ------------------ NOTIFICATIONS ------------------

    def _notify(self, state, outcome, notification: Notification):
        outcome.notifications.append(notification)
        state.observers.emit(notification)
        self.notifications.emit(state, notification)

    def _alert(self, state, outcome, title, message):
        self._notify(state, outcome, Notification("alert", message, title=title, level="error"))

    def _toast(self, state, outcome, message, level="success"):
        self._notify(state, outcome, Notification("toast", message, level=level))

    # ------------------ AUTH ------------------

    def _sign_in(self, state, outcome, credential=None):
        state.user = self.identity.sign_in(credential)
        logger.info("User {} signed in", state.user.uid)
        self._user_changed(state, outcome)

    def _sign_out(self, state, outcome):
        if state.user is not None:
            self.identity.sign_out(state.user)
        state.user = None
        self._user_changed(state, outcome)

    def _user_changed(self, state, outcome):
        self.user_changed.emit(state, state.user)
        if state.user is not None:
            outcome.data["user"] = state.user.to_dict()
            self._navigate_to(state, outcome, View.DASHBOARD)
        else:
            state.portfolios = []
            state.editing_id = None
            state.pending = None
            state.preview = None
            state.view = View.LOGIN

    # ------------------ NAVIGATION ------------------

    def _navigate(self, state, outcome, view="dashboard"):
        self._navigate_to(state, outcome, View(view))

    def _navigate_to(self, state, outcome, view: View, record: dict = None):
        if view is View.DASHBOARD:
            # Always re-read from the store after writes.
            state.portfolios = sort_by_last_modified(self.store.list(state.user.uid))
            outcome.data["portfolios"] = [to_public(p) for p in state.portfolios]
        elif view is View.EDITOR:
            outcome.data["editorTitle"] = "Edit Portfolio" if state.editing_id else "Create New Portfolio"
            outcome.data["editor"] = state.editor.to_dict()
        elif view is View.PREVIEW:
            record = record or state.preview
            if record is None:
                return self._navigate_to(state, outcome, View.DASHBOARD)
            state.preview = record
            outcome.data["html"] = str(render(record))
        elif view is View.LOGIN:
            return
        state.view = view

    def _create_new(self, state, outcome):
        state.editing_id = None
        state.editor.reset()
        state.editor.set_field("template", self.default_template)
        state.editor.set_field("theme", state.theme)
        self._navigate_to(state, outcome, View.EDITOR)

    def _edit(self, state, outcome, portfolio_id=None):
        record = self.store.get(state.user.uid, portfolio_id)
        if record is None:
            raise PortfolioNotFound(f"Portfolio {portfolio_id} was not found.")
        state.editing_id = portfolio_id
        state.editor.populate_form(record)
        self._navigate_to(state, outcome, View.EDITOR)

    # ------------------ EDITOR ------------------

    def _step(self, state, outcome, direction="next"):
        if direction == "next":
            state.editor.next_step()
        elif direction == "prev":
            state.editor.prev_step()
        else:
            try:
                state.editor.go_to_step(direction)
            except (TypeError, ValueError):
                outcome.fail(400, [{"field": "step", "message": f"Unknown step: {direction}"}])
        outcome.data["editor"] = state.editor.to_dict()

    def _set_field(self, state, outcome, name=None, value=None):
        try:
            outcome.data["valid"] = state.editor.set_field(name, value)
        except ValueError as exc:
            outcome.fail(400, [{"field": name, "message": str(exc)}])
        outcome.data["editor"] = state.editor.to_dict()

    def _add_item(self, state, outcome, kind=None, initial=None):
        try:
            outcome.data["rowId"] = state.editor.add_item(GroupKind(kind), initial)
        except ValueError as exc:
            outcome.fail(400, [{"field": str(kind), "message": str(exc)}])
        outcome.data["editor"] = state.editor.to_dict()

    def _update_item(self, state, outcome, kind=None, row_id=None, values=None):
        if values is not None and not isinstance(values, dict):
            outcome.fail(400, [{"field": f"{kind}.{row_id}", "message": "Row values must be an object."}])
            outcome.data["editor"] = state.editor.to_dict()
            return
        try:
            outcome.data["valid"] = state.editor.update_item(GroupKind(kind), row_id, **(values or {}))
        except (KeyError, ValueError) as exc:
            outcome.fail(400, [{"field": f"{kind}.{row_id}", "message": str(exc)}])
        outcome.data["editor"] = state.editor.to_dict()

    def _remove_item(self, state, outcome, kind=None, row_id=None):
        try:
            state.editor.remove_item(GroupKind(kind), row_id)
        except (KeyError, ValueError) as exc:
            outcome.fail(400, [{"field": f"{kind}.{row_id}", "message": str(exc)}])
        outcome.data["editor"] = state.editor.to_dict()

    def _move_item(self, state, outcome, kind=None, row_id=None, index=0):
        try:
            state.editor.move_item(GroupKind(kind), row_id, index)
        except (KeyError, ValueError) as exc:
            outcome.fail(400, [{"field": f"{kind}.{row_id}", "message": str(exc)}])
        outcome.data["editor"] = state.editor.to_dict()

    def _select_picture(self, state, outcome, data=b"", mimetype=""):
        if not state.editor.select_picture(data, mimetype):
            outcome.fail(400, [{"field": "profilePic", "message": "Please choose an image file."}])
        outcome.data["editor"] = state.editor.to_dict()

    def _remove_picture(self, state, outcome):
        state.editor.remove_picture()
        outcome.data["editor"] = state.editor.to_dict()

    # ------------------ SAVE / DELETE ------------------

    def _save(self, state, outcome):
        data = state.editor.collect_form_data()
        errors = validate_portfolio(data, strict=self.strict_validation)
        if errors:
            outcome.fail(400, errors)
            message = "\n".join(e["message"] for e in errors)
            self._alert(state, outcome, "Validation Error", f"Please fix the following issues:\n{message}")
            return

        # Upload before persisting so no record ever points at a local-only image.
        if state.editor.picture_state is PictureState.LOCAL:
            url = self.uploader.upload_data_url(state.editor.picture)
            state.editor.mark_uploaded(url)
            data["profilePic"] = url

        uid = state.user.uid
        if state.editing_id:
            self.store.update(uid, state.editing_id, data)
            outcome.data["id"] = state.editing_id
            self._toast(state, outcome, "Portfolio updated!")
        else:
            state.editing_id = self.store.create(uid, data)
            outcome.data["id"] = state.editing_id
            self._toast(state, outcome, "Portfolio saved!")
        self._navigate_to(state, outcome, View.DASHBOARD)

    def _request_delete(self, state, outcome, portfolio_id=None):
        state.pending = (Action.DELETE, {"portfolio_id": portfolio_id})
        self._notify(state, outcome, Notification(
            "confirm", "This action is permanent.", title="Delete Portfolio?", level="warning"
        ))

    def _confirm(self, state, outcome):
        if state.pending is None:
            return
        action, payload = state.pending
        state.pending = None
        self._handlers[action](state, outcome, **payload)

    def _cancel(self, state, outcome):
        state.pending = None

    def _delete(self, state, outcome, portfolio_id=None):
        self.store.delete(state.user.uid, portfolio_id)
        if state.editing_id == portfolio_id:
            state.editing_id = None
        if state.preview and state.preview.get("id") == portfolio_id:
            state.preview = None
        self._toast(state, outcome, "Portfolio deleted.", "info")
        self._navigate_to(state, outcome, View.DASHBOARD)

    # ------------------ PREVIEW / EXPORT / IMPORT ------------------

    def _preview(self, state, outcome, portfolio_id=None):
        if portfolio_id:
            record = self.store.get(state.user.uid, portfolio_id)
            if record is None:
                raise PortfolioNotFound(f"Portfolio {portfolio_id} was not found.")
        else:
            record = state.editor.collect_form_data()
        self._navigate_to(state, outcome, View.PREVIEW, record)

    def _export(self, state, outcome, portfolio_id=None):
        record = self.store.get(state.user.uid, portfolio_id)
        if record is None:
            raise PortfolioNotFound(f"Portfolio {portfolio_id} was not found.")
        content, filename = export_json(record)
        outcome.data.update({"filename": filename, "content": content})

    def _import(self, state, outcome, content=None):
        payload = parse_import(content, strict=self.strict_validation)
        new_id = self.store.create(state.user.uid, payload)
        logger.info("Imported portfolio {} for {}", new_id, state.user.uid)
        outcome.data["id"] = new_id
        self._navigate_to(state, outcome, View.DASHBOARD)
        self._toast(state, outcome, "Portfolio imported!")

    # ------------------ SHARING / THEME ------------------

    def _share(self, state, outcome, portfolio_id=None):
        outcome.data["shareUrl"] = self.store.publish(state.user.uid, portfolio_id)
        outcome.data["isPublic"] = True
        self._toast(state, outcome, "Portfolio is now public.")
        self._navigate_to(state, outcome, View.DASHBOARD)

    def _unshare(self, state, outcome, portfolio_id=None):
        self.store.unpublish(state.user.uid, portfolio_id)
        outcome.data["isPublic"] = False
        self._toast(state, outcome, "Portfolio is now private.", "info")
        self._navigate_to(state, outcome, View.DASHBOARD)

    def _set_theme(self, state, outcome, theme=None):
        state.theme = resolve_theme(theme)
        outcome.data["theme"] = state.theme

    # ------------------ AI ASSIST ------------------

    def _ai_improve(self, state, outcome, text="", target=None):
        outcome.data.update({"text": self.assistant.improve_writing(text), "original": text, "target": target})

    def _ai_bullets(self, state, outcome, text="", target=None):
        outcome.data.update({"text": self.assistant.generate_bullet_points(text), "original": text, "target": target})

    def _ai_draft(self, state, outcome, notes=""):
        draft = self.assistant.generate_first_draft(notes)
        state.editing_id = None
        state.editor.populate_form(draft)
        state.editor.set_field("template", self.default_template)
        state.editor.set_field("theme", state.theme)
        self._toast(state, outcome, "Draft generated. Review it before saving.", "info")
        self._navigate_to(state, outcome, View.EDITOR)

    def _ai_apply(self, state, outcome, target=None, text=""):
        """Write accepted AI text into a field: `summary` or `<group>.<rowId>.<field>`."""
        parts = str(target or "").split(".")
        try:
            if len(parts) == 1:
                state.editor.set_field(parts[0], text)
            elif len(parts) == 3:
                state.editor.update_item(GroupKind(parts[0]), parts[1], **{parts[2]: text})
            else:
                raise ValueError(f"Unknown target: {target}")
        except (KeyError, ValueError) as exc:
            outcome.fail(400, [{"field": target, "message": str(exc)}])
        outcome.data["editor"] = state.editor.to_dict()
