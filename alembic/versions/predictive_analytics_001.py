"""create predictive analytics tables

Revision ID: predictive_analytics_001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = 'predictive_analytics_001'
down_revision = None
branch_labels = None
depends_on = None


def _base_columns():
    return [
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
    ]


def _base_indexes(table):
    op.create_index(op.f(f'ix_{table}_id'), table, ['id'])
    op.create_index(op.f(f'ix_{table}_created_at'), table, ['created_at'])
    op.create_index(op.f(f'ix_{table}_is_deleted'), table, ['is_deleted'])


def upgrade() -> None:
    # Create performance_predictions table
    op.create_table('performance_predictions',
        *_base_columns(),
        sa.Column('student_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('course_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('prediction_type', sa.String(length=16), nullable=False),
        sa.Column('prediction_date', sa.DateTime(), nullable=False),
        sa.Column('target_date', sa.DateTime(), nullable=True),
        sa.Column('predicted_value', sa.Float(), nullable=False),
        sa.Column('confidence_score', sa.Float(), nullable=False),
        sa.Column('risk_level', sa.String(length=9), nullable=False),
        sa.Column('contributing_factors', sa.JSON(), nullable=True),
        sa.Column('actual_value', sa.Float(), nullable=True),
        sa.Column('accuracy_score', sa.Float(), nullable=True),
        sa.Column('is_validated', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('validated_at', sa.DateTime(), nullable=True),
        sa.Column('model_version', sa.String(length=50), nullable=False),
        sa.Column('model_metadata', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    _base_indexes('performance_predictions')
    for column in ('student_id', 'course_id', 'prediction_type', 'prediction_date',
                   'target_date', 'risk_level', 'is_validated'):
        op.create_index(op.f(f'ix_performance_predictions_{column}'), 'performance_predictions', [column])

    # Create dropout_risk_assessments table
    op.create_table('dropout_risk_assessments',
        *_base_columns(),
        sa.Column('student_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('course_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('assessment_date', sa.DateTime(), nullable=False),
        sa.Column('assessment_day', sa.Date(), nullable=False),
        sa.Column('risk_level', sa.String(length=9), nullable=False),
        sa.Column('risk_probability', sa.Float(), nullable=False),
        sa.Column('risk_factors', sa.JSON(), nullable=False),
        sa.Column('protective_factors', sa.JSON(), nullable=True),
        sa.Column('intervention_required', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('recommended_interventions', sa.JSON(), nullable=True),
        sa.Column('intervention_recommendations', sa.Text(), nullable=True),
        sa.Column('intervention_priority', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('intervention_deadline', sa.DateTime(), nullable=True),
        sa.Column('trend_analysis', sa.JSON(), nullable=True),
        sa.Column('student_notified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('instructor_notified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('next_assessment_date', sa.DateTime(), nullable=True),
        sa.Column('assessment_metadata', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    _base_indexes('dropout_risk_assessments')
    for column in ('student_id', 'course_id', 'risk_level', 'intervention_required'):
        op.create_index(op.f(f'ix_dropout_risk_assessments_{column}'), 'dropout_risk_assessments', [column])
    op.create_index('ix_dropout_risk_student_course_day', 'dropout_risk_assessments',
                    ['student_id', 'course_id', 'assessment_day'],
                    unique=True, postgresql_nulls_not_distinct=True)

    # Create learning_outcome_forecasts table
    op.create_table('learning_outcome_forecasts',
        *_base_columns(),
        sa.Column('student_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('course_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('outcome_type', sa.String(length=19), nullable=False),
        sa.Column('forecast_date', sa.DateTime(), nullable=False),
        sa.Column('target_date', sa.DateTime(), nullable=False),
        sa.Column('success_probability', sa.Float(), nullable=False),
        sa.Column('predicted_score', sa.Float(), nullable=True),
        sa.Column('estimated_days_to_completion', sa.Integer(), nullable=True),
        sa.Column('scenarios', sa.JSON(), nullable=False),
        sa.Column('confidence_level', sa.Float(), nullable=False),
        sa.Column('baseline_data', sa.JSON(), nullable=True),
        sa.Column('model_version', sa.String(length=50), nullable=True),
        sa.Column('is_realized', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('realized_at', sa.DateTime(), nullable=True),
        sa.Column('actual_outcome', sa.Float(), nullable=True),
        sa.Column('actual_completion_date', sa.DateTime(), nullable=True),
        sa.Column('accuracy_metrics', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    _base_indexes('learning_outcome_forecasts')
    for column in ('student_id', 'course_id', 'outcome_type', 'target_date', 'is_realized'):
        op.create_index(op.f(f'ix_learning_outcome_forecasts_{column}'), 'learning_outcome_forecasts', [column])

    # Create intervention_recommendations table
    op.create_table('intervention_recommendations',
        *_base_columns(),
        sa.Column('student_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('course_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('prediction_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('assessment_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('intervention_type', sa.String(length=20), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('priority', sa.Integer(), nullable=False, server_default='5'),
        sa.Column('status', sa.String(length=11), nullable=False, server_default='pending'),
        sa.Column('recommended_date', sa.DateTime(), nullable=False),
        sa.Column('scheduled_date', sa.DateTime(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('parameters', sa.JSON(), nullable=False),
        sa.Column('success_criteria', sa.JSON(), nullable=True),
        sa.Column('assigned_to_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('outcome', sa.String(length=20), nullable=True),
        sa.Column('effectiveness_score', sa.Float(), nullable=True),
        sa.Column('instructor_notes', sa.Text(), nullable=True),
        sa.Column('student_feedback', sa.Text(), nullable=True),
        sa.Column('pre_intervention_metrics', sa.JSON(), nullable=True),
        sa.Column('post_intervention_metrics', sa.JSON(), nullable=True),
        sa.Column('follow_up_required', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('follow_up_date', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['prediction_id'], ['performance_predictions.id'], ),
        sa.ForeignKeyConstraint(['assessment_id'], ['dropout_risk_assessments.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    _base_indexes('intervention_recommendations')
    for column in ('student_id', 'course_id', 'prediction_id', 'assessment_id', 'intervention_type',
                   'status', 'assigned_to_id', 'follow_up_required'):
        op.create_index(op.f(f'ix_intervention_recommendations_{column}'), 'intervention_recommendations', [column])

    # Create resource_optimizations table
    op.create_table('resource_optimizations',
        *_base_columns(),
        sa.Column('resource_type', sa.String(length=18), nullable=False),
        sa.Column('resource_id', sa.String(length=100), nullable=False),
        sa.Column('optimization_date', sa.DateTime(), nullable=False),
        sa.Column('current_efficiency', sa.Float(), nullable=False),
        sa.Column('predicted_efficiency', sa.Float(), nullable=False),
        sa.Column('current_usage', sa.JSON(), nullable=False),
        sa.Column('recommendations', sa.JSON(), nullable=False),
        sa.Column('predicted_outcomes', sa.JSON(), nullable=True),
        sa.Column('implementation_plan', sa.JSON(), nullable=True),
        sa.Column('is_implemented', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('implemented_at', sa.DateTime(), nullable=True),
        sa.Column('actual_efficiency', sa.Float(), nullable=True),
        sa.Column('implementation_results', sa.JSON(), nullable=True),
        sa.Column('validated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    _base_indexes('resource_optimizations')
    for column in ('resource_type', 'resource_id', 'is_implemented'):
        op.create_index(op.f(f'ix_resource_optimizations_{column}'), 'resource_optimizations', [column])


def downgrade() -> None:
    op.drop_table('intervention_recommendations')
    op.drop_table('resource_optimizations')
    op.drop_table('learning_outcome_forecasts')
    op.drop_table('dropout_risk_assessments')
    op.drop_table('performance_predictions')
