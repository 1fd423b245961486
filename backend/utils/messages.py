"""User-facing (Arabic) messages surfaced by the store and identity layers."""

FETCH_SUBSCRIPTIONS_FAILED = "فشل تحميل الاشتراكات."
FETCH_RECYCLED_FAILED = "فشل تحميل الاشتراكات المحذوفة."
ADD_SUBSCRIPTION_FAILED = "فشل إضافة الاشتراك والمهام."
UPDATE_SUBSCRIPTION_FAILED = "فشل تحديث الاشتراك."
DELETE_SUBSCRIPTION_FAILED = "فشل حذف الاشتراك ونقل للمحذوفات."
RESTORE_SUBSCRIPTION_FAILED = "فشل استعادة الاشتراك."
PURGE_SUBSCRIPTION_FAILED = "فشل الحذف النهائي للاشتراك."
EXPORT_FAILED = "فشل تصدير الاشتراكات."
IMPORT_FAILED = "فشل استيراد الاشتراكات."
NO_ACTIVE_SUBSCRIPTIONS = "لا توجد اشتراكات نشطة لتصديرها."
SUBSCRIPTION_NOT_FOUND = "الاشتراك غير موجود."
RECYCLED_NOT_FOUND = "الاشتراك المحذوف غير موجود."
MANUAL_TASK_NOT_FOUND = "المهمة اليدوية غير موجودة."
INVALID_SUBSCRIPTION_DATES = "تاريخ البدء أو الانتهاء غير صالح."

IMPORT_NOT_ARRAY = "ملف استيراد غير صالح: يجب أن يكون الملف بصيغة JSON ويحتوي على مصفوفة من الاشتراكات."
IMPORT_BAD_SHAPE = "ملف استيراد غير صالح: بنية البيانات داخل الملف غير متوافقة."
IMPORT_SUCCESS = "تم استيراد {count} اشتراك بنجاح."

FETCH_TASKS_FAILED = "فشل تحميل المهام."
UPDATE_TASK_FAILED = "فشل تحديث المهمة."
TASK_NOT_FOUND = "المهمة غير موجودة."

LOGIN_FAILED = "فشل تسجيل الدخول. يرجى التحقق من البريد الإلكتروني وكلمة المرور."
INVALID_CREDENTIALS = "البريد الإلكتروني أو كلمة المرور غير صحيحة."
PROFILE_LOAD_FAILED = "فشل في تحميل ملف تعريف المستخدم."
