"""
Streamlit Dashboard for Finance Scheduler

The screen a household uses to keep an eye on recurring payments.

DESIGN PRINCIPLES:
1. What is about to happen is always on the first page
2. Blocked payments are shown loudly, separate from the rest
3. Manual schedules are never paid without pressing "Confirm"
4. Every action gives visible feedback
"""

import asyncio
from datetime import date, timedelta
from decimal import Decimal

import streamlit as st

from finance_scheduler.engine import InvalidStatusTransitionError, ScheduleNotActiveError
from finance_scheduler.models.schedule import (
    ScheduleDefinition,
    ScheduledTransaction,
    ScheduleFilters,
    ScheduleStatus,
    TransactionType,
    Frequency,
)
from finance_scheduler.orchestrator import ScheduleService, create_app_components
from finance_scheduler.recurrence import RecurrenceError, occurrences_between
from finance_scheduler.services.gateways import InMemoryAccountGateway
from finance_scheduler.services.storage import NotFoundError
from finance_scheduler.validation import InvalidDateRangeError


# Page configuration
st.set_page_config(
    page_title="Finance Scheduler",
    page_icon="📅",
    layout="wide",
    initial_sidebar_state="expanded",
)

# Custom CSS for better UX
st.markdown("""
<style>
    .stButton>button {
        width: 100%;
        margin-top: 10px;
    }
    .blocked-box {
        padding: 16px;
        background-color: #f8d7da;
        border-radius: 10px;
        border-left: 5px solid #dc3545;
        margin: 10px 0;
    }
    .upcoming-box {
        padding: 16px;
        background-color: #cce5ff;
        border-radius: 10px;
        border-left: 5px solid #004085;
        margin: 10px 0;
    }
</style>
""", unsafe_allow_html=True)

_WEEKDAYS = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components():
    """Get or create application components (cached)."""
    try:
        return create_app_components()
    except Exception as e:
        st.error(f"Failed to initialize: {e}")
        return create_app_components("memory")


def _label(schedule: ScheduledTransaction) -> str:
    sign = "−" if schedule.type == TransactionType.EXPENSE else "+"
    name = schedule.description or schedule.payee or "Scheduled transaction"
    return f"{name} · {sign}{schedule.amount} · {schedule.frequency.value}"


def main():
    """Main application entry point."""
    service, _ = get_components()

    # Sidebar navigation
    st.sidebar.title("📅 Finance Scheduler")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        ["⏰ Upcoming", "🗂️ Schedules", "➕ New Schedule", "⚙️ Settings"],
        index=0,
    )

    st.sidebar.markdown("---")
    st.sidebar.markdown(
        """
        **How it works:**
        1. Create a recurring payment
        2. Automatic ones are paid when due
        3. Manual ones wait for your confirmation

        A payment that can't be covered is **blocked**
        until the money is there or you change it.
        """
    )

    if page == "⏰ Upcoming":
        render_upcoming_page(service)
    elif page == "🗂️ Schedules":
        render_schedules_page(service)
    elif page == "➕ New Schedule":
        render_create_page(service)
    elif page == "⚙️ Settings":
        render_settings_page(service)


def render_upcoming_page(service: ScheduleService):
    """Upcoming, blocked and pending schedules, plus the manual run button."""
    st.title("⏰ Upcoming Payments")

    col1, col2 = st.columns([3, 1])
    with col1:
        horizon = st.slider("Look ahead (days)", min_value=0, max_value=31, value=3)
    with col2:
        if st.button("▶️ Run due schedules now", type="primary"):
            with st.spinner("Processing due schedules..."):
                summary = run_async(service.run_due_schedules())
            counts = summary.counts()
            st.success(
                f"Processed {counts['processed']}: {counts['executed']} paid, "
                f"{counts['pending_confirmation']} waiting, "
                f"{counts['insufficient_funds']} blocked, {counts['failed']} failed"
            )

    result = run_async(service.get_upcoming(horizon_days=horizon))

    st.markdown("### 🚫 Blocked by insufficient funds")
    if not result.insufficient_funds_transactions:
        st.caption("Nothing is blocked.")
    for schedule in result.insufficient_funds_transactions:
        since = schedule.insufficient_funds_since
        st.markdown(
            f'<div class="blocked-box"><b>{_label(schedule)}</b><br>'
            f"Due {schedule.next_execution_date.isoformat()} on account {schedule.account_id}"
            + (f", blocked since {since.isoformat()}" if since else "")
            + "</div>",
            unsafe_allow_html=True,
        )

    st.markdown("### ✋ Waiting for your confirmation")
    pending = run_async(service.get_pending_confirmation())
    if not pending:
        st.caption("No manual payment is due.")
    for schedule in pending:
        col1, col2 = st.columns([3, 1])
        with col1:
            st.write(f"**{_label(schedule)}** due {schedule.next_execution_date.isoformat()}")
        with col2:
            if st.button("✅ Confirm", key=f"confirm-{schedule.id}"):
                attempt = run_async(service.confirm_execution(schedule.id))
                if attempt.outcome.value == "executed":
                    st.success(f"Paid. Next on {attempt.next_execution_date.isoformat()}")
                else:
                    st.error(attempt.message or attempt.outcome.value)

    st.markdown(f"### 📆 Next {result.horizon_days} days")
    if not result.upcoming_transactions:
        st.caption("Nothing scheduled in this window.")
    for schedule in result.upcoming_transactions:
        mode = "automatic" if schedule.auto_execute else "manual"
        st.markdown(
            f'<div class="upcoming-box"><b>{_label(schedule)}</b><br>'
            f"{schedule.next_execution_date.strftime('%A %d %B %Y')} · {mode}</div>",
            unsafe_allow_html=True,
        )


def render_schedules_page(service: ScheduleService):
    """All schedules with lifecycle actions and history."""
    st.title("🗂️ Schedules")

    col1, col2 = st.columns(2)
    with col1:
        status_filter = st.selectbox(
            "Filter by Status",
            options=[None] + list(ScheduleStatus),
            format_func=lambda x: "All Statuses" if x is None else x.value.title(),
        )
    with col2:
        frequency_filter = st.selectbox(
            "Filter by Frequency",
            options=[None] + list(Frequency),
            format_func=lambda x: "All Frequencies" if x is None else x.value.title(),
        )

    page = run_async(service.list_schedules(
        ScheduleFilters(status=status_filter, frequency=frequency_filter),
    ))
    st.caption(f"{page.total_count} schedules")
    st.markdown("---")

    for schedule in page.items:
        with st.expander(f"{_label(schedule)} · {schedule.status.value}"):
            st.write(f"Account: `{schedule.account_id}`")
            st.write(f"Next execution: {schedule.next_execution_date.isoformat()}")
            if schedule.last_execution_date:
                st.write(f"Last execution: {schedule.last_execution_date.isoformat()}")
            if schedule.end_date:
                st.write(f"Ends: {schedule.end_date.isoformat()}")

            col1, col2, col3, col4 = st.columns(4)
            try:
                if schedule.status == ScheduleStatus.ACTIVE and col1.button("⏸️ Pause", key=f"pause-{schedule.id}"):
                    run_async(service.pause(schedule.id))
                    st.rerun()
                if schedule.status == ScheduleStatus.PAUSED and col1.button("▶️ Resume", key=f"resume-{schedule.id}"):
                    run_async(service.resume(schedule.id))
                    st.rerun()
                if not schedule.status.is_terminal and col2.button("🛑 Cancel", key=f"cancel-{schedule.id}"):
                    run_async(service.cancel(schedule.id))
                    st.rerun()
                if col3.button("🗑️ Delete", key=f"delete-{schedule.id}"):
                    run_async(service.delete(schedule.id))
                    st.rerun()
            except (InvalidStatusTransitionError, ScheduleNotActiveError, NotFoundError) as e:
                st.error(f"Could not update the schedule: {e}")

            history = run_async(service.list_transactions(schedule.id, limit=12))
            if history:
                st.markdown("**Recent payments**")
                st.dataframe(
                    [
                        {
                            "date": t.transaction_date.isoformat(),
                            "amount": str(t.signed_amount),
                            "balance after": "" if t.balance_after is None else str(t.balance_after),
                        }
                        for t in history
                    ],
                    use_container_width=True,
                )


def render_create_page(service: ScheduleService):
    """Form for a new recurring payment, with a live preview."""
    st.title("➕ New Recurring Payment")

    col1, col2 = st.columns(2)
    with col1:
        description = st.text_input("Description", placeholder="Rent, salary, Netflix...")
        payee = st.text_input("Payee (optional)")
        account_id = st.text_input("Account ID", value="main")
        amount = st.number_input("Amount", min_value=0.01, value=100.00, step=10.0, format="%.2f")
        tx_type = st.radio(
            "Type",
            options=list(TransactionType),
            format_func=lambda x: x.value.title(),
            horizontal=True,
        )
    with col2:
        frequency = st.selectbox(
            "Frequency",
            options=list(Frequency),
            index=2,
            format_func=lambda x: x.value.title(),
        )
        day_of_week = None
        day_of_month = None
        if frequency == Frequency.WEEKLY:
            day_of_week = st.selectbox(
                "Day of week",
                options=range(7),
                index=1,
                format_func=lambda i: _WEEKDAYS[i],
            )
        elif frequency != Frequency.DAILY:
            day_of_month = st.number_input("Day of month", min_value=1, max_value=31, value=1)
        start_date = st.date_input("Start date", value=date.today())
        has_end = st.checkbox("Has an end date")
        end_date = st.date_input("End date", value=date.today() + timedelta(days=365)) if has_end else None
        auto_execute = st.checkbox("Pay automatically when due", value=True)

    try:
        definition = ScheduleDefinition(
            account_id=account_id,
            amount=Decimal(str(amount)).quantize(Decimal("0.01")),
            type=tx_type,
            description=description or None,
            payee=payee or None,
            frequency=frequency.value,
            day_of_week=day_of_week,
            day_of_month=int(day_of_month) if day_of_month is not None else None,
            start_date=start_date,
            end_date=end_date,
            auto_execute=auto_execute,
        )
        preview = service.preview(definition)
    except (RecurrenceError, InvalidDateRangeError, ValueError) as e:
        st.error(f"❌ {e}")
        return

    st.markdown("---")
    st.text(service.validator.get_user_friendly_summary(preview))
    horizon_end = preview.first_execution_date + timedelta(days=400)
    if end_date is not None:
        horizon_end = min(horizon_end, end_date)
    dates = occurrences_between(preview.recurrence, start_date, horizon_end, limit=6)
    st.caption("Next dates: " + ", ".join(d.isoformat() for d in dates))

    if st.button("💾 Save schedule", type="primary"):
        schedule = run_async(service.create(definition))
        st.success(f"Saved. First payment on {schedule.next_execution_date.isoformat()}")


def render_settings_page(service: ScheduleService):
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Configuration Status")

    from finance_scheduler.config import validate_all_settings

    status = validate_all_settings()

    sections = [
        ("Scheduler", "scheduler"),
        ("Google Sheets (Storage)", "google_sheets"),
        ("Application", "app"),
    ]

    for name, key in sections:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    if isinstance(service.accounts, InMemoryAccountGateway):
        st.markdown("---")
        st.markdown("### Demo accounts")
        st.caption("Running without Google Sheets. Balances live only as long as this session.")
        account_id = st.text_input("Account ID", value="main", key="demo-account")
        balance = st.number_input("Opening balance", value=1000.00, step=100.0, format="%.2f")
        if st.button("Open account"):
            service.accounts.open_account(account_id, Decimal(str(balance)).quantize(Decimal("0.01")))
            st.success(f"Account {account_id} opened")

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "To configure the application, create a `.env` file. "
        "See `.env.example` for the required variables."
    )


if __name__ == "__main__":
    main()
