"""
Bilingual (Arabic / English) message catalog.

Every message that can reach a user is built here from a pair of templates,
so error contracts always carry both languages.
"""

from typing import Dict, Tuple
from pydantic import BaseModel, Field


class LocalizedMessage(BaseModel):
    """A single user-facing message in Arabic and English."""
    code: str = Field(description="Stable machine-readable identifier")
    ar: str = Field(description="Arabic text")
    en: str = Field(description="English text")

    def __str__(self) -> str:
        return f"{self.ar} / {self.en}"


# code -> (arabic template, english template)
MESSAGES: Dict[str, Tuple[str, str]] = {
    # --- Request validation ---
    "subscription_required": (
        "معرف اشتراك الطالب مطلوب",
        "Student subscription ID is required",
    ),
    "start_date_required": ("تاريخ البداية مطلوب", "Start date is required"),
    "end_date_required": ("تاريخ النهاية مطلوب", "End date is required"),
    "invalid_date_range": (
        "تاريخ البداية يجب أن يكون قبل تاريخ النهاية",
        "Start date must be before end date",
    ),
    "total_sessions_invalid": (
        "عدد الجلسات يجب أن يكون أكبر من صفر",
        "Total sessions must be greater than zero",
    ),
    "session_duration_invalid": (
        "مدة الجلسة يجب أن تكون أكبر من صفر",
        "Session duration must be greater than zero",
    ),
    "sessions_per_week_invalid": (
        "عدد الجلسات الأسبوعية يجب أن يكون أكبر من صفر",
        "Sessions per week must be greater than zero",
    ),
    "invalid_day": (
        "قيمة يوم غير صالحة: {day}",
        "Invalid day of week: {day}",
    ),
    "invalid_time_window": (
        "نهاية الفترة الزمنية يجب أن تكون بعد بدايتها ({start} - {end})",
        "Time window end must be after its start ({start} - {end})",
    ),
    "flexibility_out_of_range": (
        "درجة المرونة يجب أن تكون بين 0 و 100",
        "Flexibility score must be between 0 and 100",
    ),

    # --- Lookups ---
    "subscription_not_found": (
        "الاشتراك غير موجود: {subscription_id}",
        "Subscription not found: {subscription_id}",
    ),
    "template_not_found": (
        "قالب الجدولة غير موجود: {template_id}",
        "Schedule template not found: {template_id}",
    ),
    "therapist_not_found": (
        "المعالج غير موجود أو ليس لديه أوقات متاحة: {therapist_id}",
        "Therapist {therapist_id} not found or has no availability",
    ),

    # --- Conflicts & capacity ---
    "therapist_double_booking": (
        "المعالج محجوز مع طالب آخر في نفس الوقت",
        "Therapist is already booked at this time",
    ),
    "room_unavailable": (
        "الغرفة محجوزة لجلسة أخرى",
        "Room is booked for another session",
    ),
    "student_unavailable": (
        "الطالب لديه جلسة أخرى في نفس الوقت",
        "Student already has a session at this time",
    ),
    "outside_availability": (
        "الجلسة خارج ساعات عمل المعالج المحددة",
        "Session falls outside the therapist's working hours",
    ),
    "slot_capacity_exhausted": (
        "لا توجد سعة متبقية في هذه الفترة",
        "No remaining capacity in this availability window",
    ),
    "daily_session_limit": (
        "المعالج تجاوز الحد الأقصى للجلسات اليومية ({limit})",
        "Therapist would exceed the daily session limit ({limit})",
    ),
    "daily_hours_limit": (
        "المعالج تجاوز الحد الأقصى لساعات العمل اليومية ({limit})",
        "Therapist would exceed the daily hour limit ({limit})",
    ),
    "weekly_hours_limit": (
        "المعالج تجاوز الحد الأقصى لساعات العمل الأسبوعية ({limit})",
        "Therapist would exceed the weekly hour limit ({limit})",
    ),
    "no_matching_room": (
        "لا توجد غرفة مناسبة متاحة",
        "No suitable room is available",
    ),

    # --- Result warnings ---
    "partial_schedule": (
        "تمت جدولة {scheduled} من أصل {total} جلسة، وتعذرت جدولة {unscheduled}",
        "Scheduled {scheduled} of {total} sessions; {unscheduled} could not be placed",
    ),
    "conflicts_detected": (
        "تم اكتشاف {count} تضارب في الجدولة",
        "{count} scheduling conflicts detected",
    ),
    "max_gap_exceeded": (
        "الفجوة بين الجلسات ({gap} يوم) تتجاوز الحد المسموح ({limit} يوم)",
        "Gap between sessions ({gap} days) exceeds the allowed maximum ({limit} days)",
    ),
    "small_candidate_pool": (
        "عدد المواعيد المتاحة ({pool}) أقل من عدد الجلسات المطلوبة ({total})",
        "Only {pool} candidate slots found for {total} requested sessions",
    ),

    # --- Freeze workflow ---
    "invalid_freeze_range": (
        "تاريخ نهاية التجميد يجب ألا يسبق تاريخ البداية",
        "Freeze end date must not be before the start date",
    ),
    "subscription_not_active": (
        "يمكن تجميد الاشتراكات النشطة فقط. الحالة الحالية: {status}",
        "Only active subscriptions can be frozen. Current status: {status}",
    ),
    "subscription_not_frozen": (
        "الاشتراك غير مجمد حالياً",
        "Subscription is not currently frozen",
    ),
    "freeze_too_long": (
        "الحد الأقصى لمدة التجميد هو {limit} يوم لكل طلب",
        "Maximum freeze duration is {limit} days per request",
    ),
    "insufficient_freeze_days": (
        "أيام التجميد غير كافية. المتاح: {available}، المطلوب: {requested}",
        "Insufficient freeze days. Available: {available}, Requested: {requested}",
    ),
    "no_reschedule_slot": (
        "تعذر إيجاد موعد بديل للجلسة خلال {horizon} يوم",
        "No replacement slot found within {horizon} days",
    ),

    # --- Processing ---
    "operation_in_progress": (
        "توجد عملية أخرى قيد التنفيذ لهذا الاشتراك: {subscription_id}",
        "Another operation is already in progress for subscription {subscription_id}",
    ),
    "store_failure": (
        "خطأ في محرك الجدولة: {detail}",
        "Scheduling engine error: {detail}",
    ),
    "time_budget_exceeded": (
        "تجاوزت عملية الجدولة الوقت المسموح ({seconds} ثانية)",
        "Scheduling exceeded its time budget ({seconds}s)",
    ),
}


def localized(code: str, **params) -> LocalizedMessage:
    """Render a catalog entry in both languages."""
    ar_template, en_template = MESSAGES[code]
    return LocalizedMessage(
        code=code,
        ar=ar_template.format(**params),
        en=en_template.format(**params),
    )
