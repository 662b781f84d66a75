# messages.py
"""User-facing (Arabic) messages and the error -> message translation."""
from typing import Optional

from fitacademy.clients.backend import BackendError

AR = {
    "unexpected": "حدث خطأ غير متوقع",
    "login_required": "يرجى تسجيل الدخول",
    "invalid_course_id": "معرف الدورة غير صحيح.",
    "course_not_found": "لم يتم العثور على الدورة المطلوبة.",
    "course_load_error": "حدث خطأ أثناء تحميل الدورة. يرجى المحاولة مرة أخرى.",
    "course_locked": "للحصول على محتوى الدورة الكامل، يرجى شراء الدورة أو التأكد من تفعيل اشتراكك.",
    "lesson_not_found": "لم يتم العثور على محتوى هذا الدرس.",
    "untitled_lesson": "درس بدون عنوان",
    "unknown_instructor": "غير محدد",
    "lesson_completed": "تم إكمال الدرس",
    "reviews_error": "حدث خطأ",
    "review_submitted": "تم إرسال التقييم بنجاح",
    "review_deleted": "تم حذف التقييم بنجاح",
    "vote_recorded": "تم تسجيل التصويت",
    "login_to_review": "سجل الدخول لإضافة تقييم",
    "login_to_vote": "سجل الدخول للتصويت",
    "already_reviewed": "لقد قمت بتقييم هذه الدورة من قبل",
    "vote_too_fast": "تم تسجيل تصويتك بالفعل، يرجى الانتظار قليلاً",
    "coupons_load_error": "فشل في تحميل أكواد الخصم",
    "coupon_created": "تم إنشاء كود الخصم بنجاح",
    "coupon_updated": "تم تحديث كود الخصم بنجاح",
    "coupon_deleted": "تم حذف كود الخصم بنجاح",
    "coupon_create_error": "فشل في إنشاء كود الخصم",
    "coupon_update_error": "فشل في تحديث كود الخصم",
    "coupon_delete_error": "فشل في حذف كود الخصم",
    "orders_load_error": "خطأ في تحميل الطلبات",
    "new_orders": "تم استلام {count} طلب جديد",
    "order_updated": "تم تحديث حالة الطلب",
    "bookings_load_error": "فشل في تحميل الحجوزات",
    "booking_created": "تم إنشاء الحجز بنجاح!",
    "booking_error": "فشل في إنشاء الحجز",
    "booking_phone_required": "رقم الهاتف مطلوب. يرجى تحديث ملفك الشخصي وإضافة رقم هاتف",
    "booking_invalid_data": "خطأ في البيانات: {details}",
    "booking_updated": "تم تحديث حالة الحجز",
    "lesson_saved": "تم حفظ الدرس بنجاح",
    "lesson_deleted": "تم حذف الدرس بنجاح",
    "admin_required": "ليس لديك صلاحية للوصول إلى هذه الصفحة",
}

ORDER_STATUS_LABELS = {
    "pending": "في الانتظار",
    "processing": "قيد المعالجة",
    "completed": "مكتمل",
    "failed": "فشل",
    "refunded": "مسترد",
}

BOOKING_STATUS_LABELS = {
    "pending_payment": "في انتظار الدفع",
    "pending_confirmation": "في انتظار التأكيد",
    "confirmed": "مؤكد",
    "completed": "مكتمل",
    "cancelled": "ملغي",
    "rescheduled": "تم إعادة الجدولة",
    "no_show": "لم يحضر",
}

PERIOD_LABELS = {
    "7d": "آخر 7 أيام",
    "30d": "آخر 30 يوم",
    "90d": "آخر 90 يوم",
    "1y": "آخر سنة",
}


def describe_error(error: Exception, default: Optional[str] = None) -> str:
    """Pick the most useful user-facing text for an upstream failure."""
    if isinstance(error, BackendError):
        if error.arabic:
            return error.arabic
        if error.payload.get("error"):
            return error.payload["error"]
    message = str(error)
    if message:
        return message
    return default or AR["unexpected"]
