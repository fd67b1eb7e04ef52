"""create classroom tables

Revision ID: 5f0c2a7d9e31
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5f0c2a7d9e31'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'auth_identities',
        sa.Column('uid', sa.String(64), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('hashed_password', sa.String(255), nullable=False),
        sa.Column('display_name', sa.String(255), nullable=True),
        sa.Column('disabled', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_auth_identities_email', 'auth_identities', ['email'], unique=True)

    op.create_table(
        'profiles',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('role', sa.Enum('admin', 'teacher', 'student', name='userrole'), nullable=False),
        sa.Column('disabled', sa.Boolean(), nullable=True),
        sa.Column('last_notification_read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_profiles_email', 'profiles', ['email'])

    op.create_table(
        'assignments',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('teacher_id', sa.String(64), nullable=False),
        sa.Column('file_url', sa.String(1000), nullable=True),
        sa.Column('file_name', sa.String(500), nullable=True),
        sa.Column('files', sa.JSON(), nullable=True),
        sa.Column('due_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_assignments_teacher_id', 'assignments', ['teacher_id'])

    op.create_table(
        'assignment_students',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('assignment_id', sa.String(64), nullable=False),
        sa.Column('student_id', sa.String(64), nullable=False),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_assignment_students_assignment_id', 'assignment_students', ['assignment_id'])
    op.create_index('ix_assignment_students_student_id', 'assignment_students', ['student_id'])

    op.create_table(
        'submissions',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('assignment_id', sa.String(64), nullable=False),
        sa.Column('student_id', sa.String(64), nullable=False),
        sa.Column('file_url', sa.String(1000), nullable=True),
        sa.Column('file_name', sa.String(500), nullable=True),
        sa.Column('files', sa.JSON(), nullable=True),
        sa.Column('status', sa.Enum('submitted', 'graded', name='submissionstatus'), nullable=False),
        sa.Column('grade', sa.Integer(), nullable=True),
        sa.Column('feedback', sa.Text(), nullable=True),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('graded_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_submissions_assignment_id', 'submissions', ['assignment_id'])
    op.create_index('ix_submissions_student_id', 'submissions', ['student_id'])

    op.create_table(
        'comments',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('submission_id', sa.String(64), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_comments_submission_id', 'comments', ['submission_id'])
    op.create_index('ix_comments_user_id', 'comments', ['user_id'])

    op.create_table(
        'lessons',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('teacher_id', sa.String(64), nullable=False),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('type', sa.Enum('text', 'file', 'youtube', name='lessontype'), nullable=False),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('file_url', sa.String(1000), nullable=True),
        sa.Column('file_name', sa.String(500), nullable=True),
        sa.Column('youtube_url', sa.String(1000), nullable=True),
        sa.Column('youtube_id', sa.String(32), nullable=True),
        sa.Column('is_published', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_lessons_teacher_id', 'lessons', ['teacher_id'])


def downgrade():
    op.drop_table('lessons')
    op.drop_table('comments')
    op.drop_table('submissions')
    op.drop_table('assignment_students')
    op.drop_table('assignments')
    op.drop_table('profiles')
    op.drop_table('auth_identities')
    sa.Enum(name='lessontype').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='submissionstatus').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='userrole').drop(op.get_bind(), checkfirst=True)
