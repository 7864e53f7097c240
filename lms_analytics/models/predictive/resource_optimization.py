# lms_analytics/models/predictive/resource_optimization.py
from sqlalchemy import Column, String, DateTime, Boolean, Float, JSON
from ..base import Base, enum_column_type
import enum


class ResourceType(enum.Enum):
    CONTENT = "content"
    INSTRUCTOR_TIME = "instructor_time"
    SYSTEM_RESOURCES = "system_resources"
    LEARNING_MATERIALS = "learning_materials"
    ASSESSMENT_TOOLS = "assessment_tools"


class ResourceOptimization(Base):
    __tablename__ = "resource_optimizations"

    resource_type = Column(enum_column_type(ResourceType), nullable=False, index=True)
    resource_id = Column(String(100), nullable=False, index=True)
    optimization_date = Column(DateTime, nullable=False)

    current_efficiency = Column(Float, nullable=False)
    predicted_efficiency = Column(Float, nullable=False)
    current_usage = Column(JSON, nullable=False)   # ResourceUsageSnapshot
    recommendations = Column(JSON, nullable=False)  # list of OptimizationAction, ranked
    predicted_outcomes = Column(JSON)              # PredictedOutcomes

    # Implementation tracking
    implementation_plan = Column(JSON)             # list of ImplementationPhase
    is_implemented = Column(Boolean, default=False, nullable=False, index=True)
    implemented_at = Column(DateTime)
    actual_efficiency = Column(Float)
    implementation_results = Column(JSON)          # ImplementationResults
    validated_at = Column(DateTime)
