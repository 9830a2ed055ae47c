"""
Scene Engine - multi-step wizard core

Declarative scene definitions drive every multi-step flow (Flexy deposit, QR
transfer, gift card redemption). The engine owns the transitions; handlers only
translate Telegram updates into SceneInput and render the resulting step.

Transitions:
    advance()  forward, only to a step the current step declares in next_steps,
               after the current step's validators and the target's requires
               and guards pass
    back()     to the previous step in history
    cancel()   ends the scene; timeouts end it as failed
    submit()   the single point where a scene reaches the backend

Leaving a step for any reason runs its on_exit hooks, which is how scoped
resources (the camera scan session) get released.

Architecture:
    SceneDefinition -> SceneState -> ComponentProcessor -> SceneEngine.advance
                    -> SceneStateManager (history, timeout)
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, Iterable, List, Optional

from config import Config
from models import ReceiptFile
from utils import messages
from utils.exception_handler import (
    OpayError,
    SceneNotFoundError,
    SceneValidationError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# ===== SCENE ENGINE ENUMS AND TYPES =====


class SceneStatus(Enum):
    """Scene execution status"""
    ACTIVE = "active"
    WAITING_INPUT = "waiting_input"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ComponentType(Enum):
    """Types of input components available"""
    AMOUNT_INPUT = "amount_input"
    PHONE_INPUT = "phone_input"
    RECEIPT_UPLOAD = "receipt_upload"
    SELECTION_MENU = "selection_menu"
    CODE_INPUT = "code_input"
    QR_SCAN = "qr_scan"
    QR_DISPLAY = "qr_display"
    CONFIRMATION = "confirmation"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SceneState:
    """Current state of a scene instance"""
    scene_id: str
    user_id: int
    current_step: str
    status: SceneStatus
    data: Dict[str, Any] = field(default_factory=dict)
    history: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    # live objects scoped to the scene (camera session); never persisted
    resources: Dict[str, Any] = field(default_factory=dict, repr=False)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    timeout_at: Optional[datetime] = None

    @property
    def is_finished(self) -> bool:
        return self.status in (SceneStatus.COMPLETED, SceneStatus.FAILED, SceneStatus.CANCELLED)


@dataclass
class ComponentConfig:
    """Configuration for an input component"""
    component_type: ComponentType
    config: Dict[str, Any] = field(default_factory=dict)
    on_success: Optional[str] = None  # Next step on success
    on_error: Optional[str] = None    # Step to fall back to on error


DataCheck = Callable[[Dict[str, Any]], None]
ExitHook = Callable[[SceneState], Any]


@dataclass
class SceneStep:
    """Definition of a single step in a scene"""
    step_id: str
    title: str
    description: str
    components: List[ComponentConfig] = field(default_factory=list)
    next_steps: List[str] = field(default_factory=list)
    requires: List[str] = field(default_factory=list)
    # run on the scene data before leaving forward; raise ValidationError
    validators: List[DataCheck] = field(default_factory=list)
    # run on the scene data before entering
    guards: List[DataCheck] = field(default_factory=list)
    on_exit: List[ExitHook] = field(default_factory=list)
    can_go_back: bool = True


@dataclass
class SceneDefinition:
    """Complete definition of a scene flow"""
    scene_id: str
    name: str
    description: str
    steps: List[SceneStep]
    initial_step: str
    final_steps: List[str]
    submit_step: Optional[str] = None

    def __post_init__(self):
        self._by_id = {step.step_id: step for step in self.steps}
        for step in self.steps:
            for target in step.next_steps:
                if target not in self._by_id:
                    raise ValueError(f"{self.scene_id}: step {step.step_id} points to unknown step {target}")
        if self.initial_step not in self._by_id:
            raise ValueError(f"{self.scene_id}: unknown initial step {self.initial_step}")

    def get_step(self, step_id: str) -> SceneStep:
        step = self._by_id.get(step_id)
        if step is None:
            raise SceneNotFoundError(f"{self.scene_id}: step not found: {step_id}")
        return step


@dataclass
class SceneInput:
    """One user interaction, already stripped of Telegram types"""
    text: Optional[str] = None
    choice: Optional[str] = None
    photo: Optional[ReceiptFile] = None
    services: Dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass
class StepOutcome:
    """What happened to a SceneInput"""
    handled: bool
    step_id: Optional[str] = None
    error: Optional[str] = None
    submit: bool = False
    changed_step: bool = False


async def _run_exit_hooks(step: SceneStep, state: SceneState) -> None:
    for hook in step.on_exit:
        try:
            outcome = hook(state)
            if asyncio.iscoroutine(outcome):
                await outcome
        except Exception as e:
            # teardown keeps going so later hooks still release their resources
            logger.error(f"❌ Exit hook {getattr(hook, '__name__', hook)} failed on {step.step_id}: {e}")


# ===== SCENE STATE MANAGER =====


class SceneStateManager:
    """Keeps one active scene per user plus an archive of finished ones"""

    def __init__(self, clock: Callable[[], datetime] = _utcnow, history_limit: Optional[int] = None):
        self.clock = clock
        self.history_limit = history_limit or Config.SCENE_HISTORY_LIMIT
        self._active_scenes: Dict[int, SceneState] = {}
        self._scene_history: Dict[int, Deque[SceneState]] = {}

    def _archive_for(self, user_id: int) -> Deque[SceneState]:
        if user_id not in self._scene_history:
            self._scene_history[user_id] = deque(maxlen=self.history_limit)
        return self._scene_history[user_id]

    async def create_scene_instance(
        self,
        scene_id: str,
        user_id: int,
        initial_step: str,
        timeout_minutes: int = 30,
    ) -> SceneState:
        now = self.clock()
        scene_state = SceneState(
            scene_id=scene_id,
            user_id=user_id,
            current_step=initial_step,
            status=SceneStatus.ACTIVE,
            created_at=now,
            updated_at=now,
            timeout_at=now + timedelta(minutes=timeout_minutes),
        )
        self._active_scenes[user_id] = scene_state
        self._archive_for(user_id)
        logger.info(f"Created scene instance: {scene_id} for user {user_id}")
        return scene_state

    def peek(self, user_id: int) -> Optional[SceneState]:
        """Active scene without the timeout check"""
        return self._active_scenes.get(user_id)

    def is_expired(self, scene: SceneState) -> bool:
        return bool(scene.timeout_at and self.clock() > scene.timeout_at)

    def touch(self, scene: SceneState) -> None:
        scene.updated_at = self.clock()

    async def add_scene_error(self, user_id: int, error: str) -> bool:
        scene = self._active_scenes.get(user_id)
        if not scene:
            return False
        scene.errors.append(f"{self.clock().isoformat()}: {error}")
        self.touch(scene)
        return True

    async def mark_scene_completed(
        self,
        user_id: int,
        status: SceneStatus,
        result: Optional[Any] = None,
    ) -> Optional[SceneState]:
        """Archive the active scene with a terminal status"""
        scene = self._active_scenes.pop(user_id, None)
        if not scene:
            return None
        scene.status = status
        self.touch(scene)
        if result is not None:
            scene.data["final_result"] = result
        scene.resources.clear()
        # uploaded files stay with the backend, not in the archive
        scene.data = {
            key: value for key, value in scene.data.items()
            if not isinstance(value, (ReceiptFile, bytes, bytearray))
        }
        self._archive_for(user_id).append(scene)
        logger.info(f"Scene {scene.scene_id} finished with status {status.value} for user {user_id}")
        return scene

    def get_history(self, user_id: int) -> List[SceneState]:
        return list(self._scene_history.get(user_id, []))


# ===== SCENE ENGINE CORE =====


class SceneEngine:
    """Core Scene Engine - orchestrates all scene operations"""

    def __init__(
        self,
        clock: Callable[[], datetime] = _utcnow,
        timeout_minutes: Optional[int] = None,
        history_limit: Optional[int] = None,
    ):
        self.state_manager = SceneStateManager(clock, history_limit)
        self.scene_registry: Dict[str, SceneDefinition] = {}
        self.timeout_minutes = timeout_minutes or Config.SCENE_TIMEOUT_MINUTES
        self._initialized = False

    def register_scene(self, scene: SceneDefinition) -> None:
        self.scene_registry[scene.scene_id] = scene
        logger.info(f"Registered scene: {scene.scene_id}")

    def initialize(self) -> None:
        """Register the scenes shipped in the scenes package"""
        if self._initialized:
            return
        from scenes import ALL_SCENES

        for scene in ALL_SCENES:
            self.register_scene(scene)
        self._initialized = True
        logger.info(f"Scene Engine initialized with {len(ALL_SCENES)} scenes")

    def get_definition(self, scene_id: str) -> SceneDefinition:
        scene_def = self.scene_registry.get(scene_id)
        if not scene_def:
            raise SceneNotFoundError(f"Scene not found: {scene_id}")
        return scene_def

    def current_step(self, state: SceneState) -> SceneStep:
        return self.get_definition(state.scene_id).get_step(state.current_step)

    # ----- lifecycle -----

    async def get_active_scene(self, user_id: int) -> Optional[SceneState]:
        scene = self.state_manager.peek(user_id)
        if scene and self.state_manager.is_expired(scene):
            logger.warning(f"Scene {scene.scene_id} timed out for user {user_id}")
            await self._finish(scene, SceneStatus.FAILED, "Scene timed out")
            return None
        return scene

    async def require_scene(self, user_id: int) -> SceneState:
        scene = await self.get_active_scene(user_id)
        if not scene:
            raise SceneNotFoundError(f"No active scene for user {user_id}", messages.SESSION_EXPIRED)
        return scene

    async def start_scene(
        self,
        scene_id: str,
        user_id: int,
        initial_data: Optional[Dict[str, Any]] = None,
    ) -> SceneState:
        """Start a scene, cancelling whatever the user had open"""
        scene_def = self.get_definition(scene_id)
        await self.cancel(user_id)

        state = await self.state_manager.create_scene_instance(
            scene_id, user_id, scene_def.initial_step, self.timeout_minutes
        )
        if initial_data:
            state.data.update(initial_data)
        state.status = SceneStatus.WAITING_INPUT
        logger.info(f"Started scene {scene_id} for user {user_id}")
        return state

    async def _finish(self, state: SceneState, status: SceneStatus, result: Optional[Any] = None) -> SceneState:
        scene_def = self.scene_registry.get(state.scene_id)
        if scene_def:
            await _run_exit_hooks(scene_def.get_step(state.current_step), state)
        return await self.state_manager.mark_scene_completed(state.user_id, status, result)

    async def cancel(self, user_id: int) -> bool:
        """Cancel the active scene for a user"""
        state = self.state_manager.peek(user_id)
        if not state:
            return False
        await self._finish(state, SceneStatus.CANCELLED, "User cancelled")
        logger.info(f"Cancelled scene {state.scene_id} for user {user_id}")
        return True

    async def complete(self, user_id: int, result: Optional[Any] = None) -> SceneState:
        state = await self.require_scene(user_id)
        scene_def = self.get_definition(state.scene_id)
        if state.current_step not in scene_def.final_steps:
            raise SceneValidationError(
                f"{state.current_step} is not a final step of {state.scene_id}", state.current_step
            )
        return await self._finish(state, SceneStatus.COMPLETED, result)

    # ----- transitions -----

    async def advance(
        self,
        user_id: int,
        target_step: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> SceneState:
        """Move forward; on any failure the scene stays where it was"""
        state = await self.require_scene(user_id)
        scene_def = self.get_definition(state.scene_id)
        step = scene_def.get_step(state.current_step)

        if target_step is None:
            if len(step.next_steps) != 1:
                raise SceneValidationError(f"{step.step_id} needs an explicit target", step.step_id)
            target_step = step.next_steps[0]
        if target_step not in step.next_steps:
            raise SceneValidationError(f"{step.step_id} cannot go to {target_step}", step.step_id)

        merged = {**state.data, **(data or {})}
        target = scene_def.get_step(target_step)
        try:
            for check in step.validators:
                check(merged)
            missing = [key for key in target.requires if merged.get(key) in (None, "")]
            if missing:
                raise ValidationError(f"{target_step} requires {', '.join(missing)}", messages.STEP_INCOMPLETE)
            for check in target.guards:
                check(merged)
        except ValidationError as e:
            await self.state_manager.add_scene_error(user_id, e.message)
            raise SceneValidationError(e.message, step.step_id, user_message=e.user_message) from e

        await _run_exit_hooks(step, state)
        state.data = merged
        state.history.append(step.step_id)
        state.current_step = target_step
        if state.status != SceneStatus.PROCESSING:
            state.status = SceneStatus.WAITING_INPUT
        self.state_manager.touch(state)
        logger.info(f"Scene {state.scene_id} user {user_id}: {step.step_id} -> {target_step}")
        return state

    async def back(self, user_id: int) -> SceneState:
        state = await self.require_scene(user_id)
        step = self.current_step(state)
        if state.status == SceneStatus.PROCESSING:
            raise SceneValidationError("cannot go back while processing", step.step_id, messages.ALREADY_PROCESSING)
        if not step.can_go_back or not state.history:
            raise SceneValidationError(f"cannot go back from {step.step_id}", step.step_id, messages.CANNOT_GO_BACK)

        await _run_exit_hooks(step, state)
        previous = state.history.pop()
        state.current_step = previous
        state.status = SceneStatus.WAITING_INPUT
        self.state_manager.touch(state)
        logger.info(f"Scene {state.scene_id} user {user_id}: {step.step_id} <- back to {previous}")
        return state

    async def rewind(self, user_id: int, step_id: str, drop: Iterable[str] = ()) -> SceneState:
        """
        Return to an earlier step of the current run, forgetting the given
        data keys. Used when a submit shows that data collected at that step
        went stale; can_go_back does not apply.
        """
        state = await self.require_scene(user_id)
        if state.status == SceneStatus.PROCESSING:
            raise SceneValidationError("cannot rewind while processing", state.current_step, messages.ALREADY_PROCESSING)
        if step_id not in state.history:
            raise SceneValidationError(f"{step_id} was not visited", state.current_step)

        await _run_exit_hooks(self.current_step(state), state)
        while state.history[-1] != step_id:
            state.history.pop()
        state.history.pop()
        state.current_step = step_id
        for key in drop:
            state.data.pop(key, None)
        state.status = SceneStatus.WAITING_INPUT
        self.state_manager.touch(state)
        logger.info(f"Scene {state.scene_id} user {user_id}: rewound to {step_id}")
        return state

    async def update_data(self, user_id: int, data: Dict[str, Any]) -> SceneState:
        state = await self.require_scene(user_id)
        state.data.update(data)
        self.state_manager.touch(state)
        return state

    # ----- submission -----

    async def submit(self, user_id: int, action: Callable[[SceneState], Awaitable[Any]]) -> SceneState:
        """
        Run the scene's backend write once, then move to the submit step.

        A second submit while the first is in flight is refused. When the
        action raises, the scene returns to waiting on the same step so the
        user can try again.
        """
        state = await self.require_scene(user_id)
        scene_def = self.get_definition(state.scene_id)
        if state.status == SceneStatus.PROCESSING:
            raise SceneValidationError("submission already in progress", state.current_step, messages.ALREADY_PROCESSING)
        if not scene_def.submit_step or scene_def.submit_step not in self.current_step(state).next_steps:
            raise SceneValidationError(f"cannot submit from {state.current_step}", state.current_step)

        state.status = SceneStatus.PROCESSING
        try:
            result = await action(state)
        except OpayError:
            state.status = SceneStatus.WAITING_INPUT
            raise
        except Exception:
            state.status = SceneStatus.WAITING_INPUT
            logger.error(f"❌ Submit failed in scene {state.scene_id} for user {user_id}", exc_info=True)
            raise

        await self.advance(user_id, scene_def.submit_step, {"result": result})
        return await self.complete(user_id, result)

    # ----- input routing -----

    async def handle_input(self, user_id: int, scene_input: SceneInput) -> StepOutcome:
        """Route one user interaction to the current step's components"""
        state = await self.get_active_scene(user_id)
        if not state:
            return StepOutcome(handled=False)
        if state.status == SceneStatus.PROCESSING:
            return StepOutcome(handled=True, step_id=state.current_step)

        from components.component_processor import ComponentProcessor

        processor = ComponentProcessor(self)
        for component_config in self.current_step(state).components:
            outcome = await processor.process_component(state, component_config, scene_input)
            if outcome.handled:
                return outcome

        logger.debug(f"No component handled input in step {state.current_step}")
        return StepOutcome(handled=False, step_id=state.current_step)

    async def get_scene_status(self, user_id: int) -> Optional[Dict[str, Any]]:
        state = await self.get_active_scene(user_id)
        if not state:
            return None
        return {
            "scene_id": state.scene_id,
            "current_step": state.current_step,
            "status": state.status.value,
            "history": list(state.history),
            "created_at": state.created_at.isoformat(),
            "updated_at": state.updated_at.isoformat(),
        }


# ===== GLOBAL SCENE ENGINE INSTANCE =====

_scene_engine: Optional[SceneEngine] = None


def get_scene_engine() -> SceneEngine:
    """Get the global scene engine instance"""
    global _scene_engine
    if _scene_engine is None:
        _scene_engine = SceneEngine()
        _scene_engine.initialize()
    return _scene_engine
