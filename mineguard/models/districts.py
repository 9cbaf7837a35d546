"""District risk profiles, curated locations and zone survey sites."""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..config import ConfigurationError, get_yaml_setting

DEFAULT_PROFILE_KEY = "default"


class DistrictRiskProfile(BaseModel):
    """Per-district prior used to bound statistics."""
    model_config = ConfigDict(frozen=True)

    mining_intensity: float = Field(ge=0, le=1)
    environmental_sensitivity: float = Field(ge=0, le=1)
    base_vegetation_loss: float = Field(ge=0, le=100, description="Percent")
    base_soil_exposure: float = Field(ge=0, le=100, description="Percent")
    water_contamination_risk: float = Field(ge=0, le=1)
    illegal_mining_likelihood: float = Field(ge=0, le=1)


class CuratedLocation(BaseModel):
    """Known legal or illegal site used as ground truth."""
    model_config = ConfigDict(frozen=True)

    name: str
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    is_legal: bool
    zone_type: str
    environmental_impact: str
    confidence: float = Field(ge=0, le=1)
    nearest_community: str
    land_use: str
    protection_status: str


class CuratedLocationGroup(BaseModel):
    """Curated locations that apply to districts matching any substring."""
    model_config = ConfigDict(frozen=True)

    match: list[str] = Field(min_length=1)
    locations: list[CuratedLocation] = Field(min_length=1)


class ZoneSurveySite(BaseModel):
    """Template for a known illegal-mining zone."""
    model_config = ConfigDict(frozen=True)

    name: str
    lat: float
    lng: float
    risk: Literal["high", "very_high", "critical"]
    zone_type: str
    legal_status: str


class DistrictRegistry:
    """
    Lookup tables keyed by district name.

    Profile lookup is a case-insensitive exact match with a fallback to the
    "default" entry. The high-risk, detection-bonus and curated-location
    tables match by substring of the lowercased district name.
    """

    def __init__(
        self,
        risk_profiles: dict[str, DistrictRiskProfile],
        high_risk: Optional[list[str]] = None,
        detection_bonus: Optional[list[str]] = None,
        remoteness_scores: Optional[dict[str, float]] = None,
        remoteness_default: float = 0.3,
        curated_groups: Optional[list[CuratedLocationGroup]] = None,
        zone_survey_sites: Optional[list[ZoneSurveySite]] = None,
    ):
        profiles = {name.strip().lower(): p for name, p in risk_profiles.items()}
        if DEFAULT_PROFILE_KEY not in profiles:
            raise ConfigurationError("District risk profiles must include a 'default' entry")

        self._profiles = profiles
        self.high_risk = [d.lower() for d in (high_risk or [])]
        self.detection_bonus = [d.lower() for d in (detection_bonus or [])]
        self.remoteness_scores = {k.lower(): v for k, v in (remoteness_scores or {}).items()}
        self.remoteness_default = remoteness_default
        self.curated_groups = list(curated_groups or [])
        self.zone_survey_sites = list(zone_survey_sites or [])

    @classmethod
    def from_dict(cls, data: dict) -> "DistrictRegistry":
        """
        Build a registry from the `districts` section of config.yaml.

        Raises:
            ConfigurationError: If a table is missing or a value is out of range
        """
        if not isinstance(data, dict):
            raise ConfigurationError("District tables must be a mapping")

        try:
            profiles = {
                name: DistrictRiskProfile(**values)
                for name, values in (data.get("risk_profiles") or {}).items()
            }
            groups = [CuratedLocationGroup(**g) for g in data.get("curated_locations") or []]
            sites = [ZoneSurveySite(**s) for s in data.get("zone_survey_sites") or []]
        except (ValidationError, TypeError) as e:
            raise ConfigurationError(f"Invalid district table: {e}")

        remoteness = data.get("remoteness") or {}
        return cls(
            risk_profiles=profiles,
            high_risk=data.get("high_risk"),
            detection_bonus=data.get("detection_bonus"),
            remoteness_scores=remoteness.get("scores"),
            remoteness_default=float(remoteness.get("default", 0.3)),
            curated_groups=groups,
            zone_survey_sites=sites,
        )

    @classmethod
    def from_config(cls) -> "DistrictRegistry":
        """Build the registry from config.yaml."""
        return cls.from_dict(get_yaml_setting("districts", default={}))

    def lookup(self, district_name: str) -> DistrictRiskProfile:
        """Profile for a district, falling back to the default profile."""
        key = (district_name or "").strip().lower()
        return self._profiles.get(key, self._profiles[DEFAULT_PROFILE_KEY])

    def districts(self) -> list[str]:
        return [name for name in self._profiles if name != DEFAULT_PROFILE_KEY]

    def is_high_risk(self, district_name: str) -> bool:
        name = (district_name or "").lower()
        return any(d in name for d in self.high_risk)

    def has_detection_bonus(self, district_name: str) -> bool:
        name = (district_name or "").lower()
        return any(d in name for d in self.detection_bonus)

    def remoteness_score(self, district_name: str) -> float:
        return self.remoteness_scores.get((district_name or "").strip().lower(), self.remoteness_default)

    def curated_locations_for(self, district_name: str) -> list[CuratedLocation]:
        """Curated locations of the first group matching the district, or an empty list."""
        name = (district_name or "").lower()
        for group in self.curated_groups:
            if any(m.lower() in name for m in group.match):
                return list(group.locations)
        return []
