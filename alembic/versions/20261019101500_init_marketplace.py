from alembic import op
import sqlalchemy as sa

revision = "20261019101500"
down_revision = None

UTC_NOW = sa.text("(now() at time zone 'utc')")

def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('address', sa.Text(), nullable=False, server_default=''),
        sa.Column('role', sa.String(length=32), nullable=False, server_default='customer'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=240), nullable=False),
        sa.Column('price_cents', sa.BigInteger(), nullable=False),
        sa.Column('available_qty', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('artisan_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.CheckConstraint('available_qty >= 0', name='ck_products_available_qty'),
    )
    op.create_index('ix_products_artisan_id', 'products', ['artisan_id'])

    op.create_table(
        'cart_items',
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('qty', sa.Integer(), nullable=False),
        sa.Column('subtotal_cents', sa.BigInteger(), nullable=False),
        sa.Column('added_at', sa.DateTime(), nullable=False, server_default=UTC_NOW),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=UTC_NOW),
        sa.CheckConstraint('qty > 0', name='ck_cart_items_qty'),
    )

    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='PENDING'),
        sa.Column('total_cents', sa.BigInteger(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='EUR'),
        sa.Column('payment_session_id', sa.String(length=255), nullable=True),
        sa.Column('payment_session_url', sa.String(length=1024), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=UTC_NOW),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('closed_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=UTC_NOW),
    )
    op.create_index('ix_orders_customer_id', 'orders', ['customer_id'])
    op.create_index('ix_orders_payment_session_id', 'orders', ['payment_session_id'])
    op.create_index(
        'uq_orders_one_pending_per_customer', 'orders', ['customer_id'], unique=True,
        postgresql_where=sa.text("status = 'PENDING'"),
    )

    op.create_table(
        'sub_orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('artisan_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='In attesa'),
        sa.Column('subtotal_cents', sa.BigInteger(), nullable=False),
        sa.Column('activated_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=UTC_NOW),
        sa.UniqueConstraint('order_id', 'artisan_id', name='uq_sub_orders_order_artisan'),
    )
    op.create_index('ix_sub_orders_order_id', 'sub_orders', ['order_id'])
    op.create_index('ix_sub_orders_artisan_id', 'sub_orders', ['artisan_id'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('sub_order_id', sa.Integer(), sa.ForeignKey('sub_orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('title_snapshot', sa.String(length=255), nullable=False),
        sa.Column('qty', sa.Integer(), nullable=False),
        sa.Column('historical_unit_price_cents', sa.BigInteger(), nullable=False),
        sa.Column('subtotal_cents', sa.BigInteger(), nullable=False),
        sa.UniqueConstraint('sub_order_id', 'product_id', name='uq_order_items_sub_order_product'),
    )
    op.create_index('ix_order_items_sub_order_id', 'order_items', ['sub_order_id'])

    op.create_table(
        'stock_reservations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('qty', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='HELD'),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=UTC_NOW),
        sa.UniqueConstraint('order_id', 'product_id', name='uq_stock_reservations_order_product'),
    )
    op.create_index('ix_stock_reservations_order_id', 'stock_reservations', ['order_id'])

def downgrade():
    op.drop_table('stock_reservations')
    op.drop_table('order_items')
    op.drop_table('sub_orders')
    op.drop_index('uq_orders_one_pending_per_customer', table_name='orders')
    op.drop_table('orders')
    op.drop_table('cart_items')
    op.drop_table('products')
    op.drop_table('users')
