"""Component configuration — planner, mediation, physics and scheduling knobs."""

from typing import Dict, List, Tuple

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict


class PlannerConfig(BaseSettings):
    """Reasoning-endpoint settings. Overridable via HABITAT_PLANNER_* env vars."""

    model_config = SettingsConfigDict(
        env_prefix="HABITAT_PLANNER_",
        case_sensitive=False,
        extra="ignore",
    )

    endpoint: str = "http://localhost:11434/api/generate"
    model: str = "mistral"
    timeout_seconds: float = 30.0
    max_retries: int = 2                    # attempts = max_retries + 1
    backoff_seconds: float = 1.0            # linear: backoff * attempt
    temperature: float = 0.3
    max_tokens: int = 1024
    stop: List[str] = ["\n\n", "```"]
    enabled: bool = True


class MediationConfig(BaseModel):
    low_power_threshold_kw: float = 1.0     # high-power pairs conflict below this
    safety_bonus: float = 10.0
    out_of_band_bonus: float = 5.0
    safe_band_c: Tuple[float, float] = (18.0, 28.0)
    tie_break_scale: float = 0.1
    default_soft_weight: float = 0.5
    loud_threshold: float = 0.3
    goal_aliases: Dict[str, str] = {
        "safe_temperature": "safety",
        "sleep_support": "comfort",
    }


class PhysicsConfig(BaseModel):
    # Temperature actuation
    temp_ramp_c: float = 0.5                # max °C change per tick from an action
    temp_noise_std: float = 0.1
    temp_noise_limit: float = 0.2           # |noise| never exceeds this
    default_temp_step_c: float = 0.5
    min_on_ticks: int = 3                   # climate-control minimum on-time
    comfort_temp_c: float = 22.0

    # Lighting / furniture / fan
    brightness_step: float = 0.3
    day_lumens_target: float = 0.6
    resize_step_cm: float = 10.0
    size_bounds_cm: Tuple[float, float] = (120.0, 250.0)

    # Messaging
    message_drop_probability: float = 0.02
    message_latency_ms: Tuple[float, float] = (100.0, 800.0)

    # Human impact epsilon bands (scaled by 1 - harm_sensitivity)
    impact_epsilon: float = 0.02
    airflow_epsilon: float = 0.05

    # Environment
    ambient_temp_c: float = 20.0
    temp_drift_rate: float = 0.02
    ambient_noise_std: float = 0.05
    ambient_noise_limit: float = 0.1        # |ambient temperature noise| never exceeds this
    lumens_decay: float = 0.98
    noise_decay: float = 0.8
    humidity_baseline: float = 0.5
    humidity_rate: float = 0.1
    mood_rate: float = 0.05

    # Regeneration per tick
    power_regen_kw: float = 0.1
    bandwidth_regen: float = 0.05
    privacy_regen: float = 0.01


class SchedulerConfig(BaseModel):
    tick_seconds: float = 10.0              # simulated seconds per tick
    tick_interval_seconds: float = 10.0     # wall-clock pacing at speed 1
    planning_modulus: int = 4
    max_events: int = 100
    max_inbound_messages: int = 4
    message_window_sec: float = 60.0
    harmony_window: int = 10
    conflict_penalty: float = 0.1
    cooperation_bonus: float = 0.05
    director_window: int = 20
    director_cooldown_ticks: int = 5
    director_lumens_delta: float = -0.05
