"""add_stored_files_table

Revision ID: 5c1f2e8a9b3d
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '5c1f2e8a9b3d'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'stored_files',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False, comment='主键ID'),
        sa.Column('file_name', sa.String(length=255), nullable=False, comment='显示文件名'),
        sa.Column('storage_key', sa.String(length=512), nullable=False, comment='对象存储中的Key（路径）'),
        sa.Column('file_size', sa.BigInteger(), nullable=False, server_default=sa.text('0'), comment='文件大小（字节）'),
        sa.Column('mime_type', sa.String(length=100), nullable=False, server_default=sa.text("'application/octet-stream'"), comment='MIME类型'),
        sa.Column('access_token', sa.String(length=64), nullable=False, comment='访问令牌（不透明随机串）'),
        sa.Column('requires_auth', sa.Boolean(), nullable=False, server_default=sa.text('true'), comment='是否需要登录才能访问'),
        sa.Column('uploaded_by', sa.Integer(), nullable=True, comment='上传者ID（同步导入时为空）'),
        sa.Column('uploaded_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='上传时间'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('access_token', name='uq_stored_files_access_token'),
        comment='私有存储桶文件目录，索引桶内对象并提供访问令牌'
    )

    # 同步时按 key 批量删除/比对
    op.create_index('ix_stored_files_storage_key', 'stored_files', ['storage_key'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_stored_files_storage_key', table_name='stored_files')
    op.drop_table('stored_files')
