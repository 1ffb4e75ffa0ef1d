"""
utils/constants.py

Purpose: Centralized static content

- All user-facing messages (Spanish, es-MX)
- Command vocabularies (cancel, tones, yes/no, billing cycles)
- Intent groupings shared by the router and the paywall

(Prevents hardcoding across the codebase)
"""

# ============================================================
# VOCABULARIES
# ============================================================

CANCEL_WORDS = {"cancelar", "cancela", "cancel", "salir", "olvídalo", "olvidalo", "stop"}

AFFIRMATIVE_WORDS = {"si", "sí", "sip", "ok", "okay", "dale", "enviar", "envíalo", "envialo", "manda", "mándalo", "mandalo", "1"}
NEGATIVE_WORDS = {"no", "nop", "no enviar", "mejor no", "2"}

# Tone label -> accepted inputs
TONE_CHOICES = {
    "amable": {"amable", "1", "suave", "amigable"},
    "firme": {"firme", "2", "directo", "serio"},
    "formal": {"formal", "3", "profesional"},
}

# Billing cycle -> accepted inputs
CYCLE_CHOICES = {
    "monthly": {"mensual", "mes", "1", "monthly"},
    "yearly": {"anual", "año", "ano", "2", "yearly"},
}

CYCLE_LABELS = {"monthly": "mensual", "yearly": "anual"}

# Intents that consume daily quota on the free plan
BILLABLE_INTENTS = {"add_debt", "prioritize", "remind", "mark_paid"}

# ============================================================
# WELCOME & HELP
# ============================================================

WELCOME_MESSAGE = """👋 *¡Hola! Soy CobraYa.*

Te ayudo a llevar quién te debe y a cobrar sin pena.

Prueba:
• "Juan me debe 8500 desde el 3 de mayo"
• "¿Quién me debe?"
• "¿A quién cobro primero?"
• "Recuérdale a Juan"
"""

HELP_MESSAGE = """Así te ayudo:
1) Registra: "Juan me debe 8500 desde el 3 de mayo"
2) Consulta: "¿Quién me debe?"
3) Prioriza: "¿A quién cobro primero?"
4) Guarda su número: "guarda tel de Juan 5512345678"
5) Cobra: "Recuérdale a Juan"
6) Marca pagos: "Juan ya pagó"

Más: "precios", "mi plan", "soporte".
Tip: también entiendo "me deben 2k" o "Pedro quedó a deber 300"."""

UNKNOWN_MESSAGE = """Te leo, pero no entendí 🤔 Prueba:
• "Juan me debe 8500 desde el 3 de mayo"
• "¿Quién me debe?"
• "¿A quién cobro primero?"
Escribe *ayuda* para ver todo."""

ERROR_MESSAGE = "❌ Ocurrió un error de mi lado. Intenta de nuevo en un momento."

THROTTLE_MESSAGE = "⏳ Vas muy rápido. Espera unos segundos y vuelve a escribirme."

CANCELLED_MESSAGE = "👌 Listo, lo dejamos ahí. ¿Qué más necesitas?"
NOTHING_TO_CANCEL_MESSAGE = "No hay nada pendiente que cancelar. Escribe *ayuda* para ver opciones."

# ============================================================
# DEBTS
# ============================================================

DEBT_SAVED_MESSAGE = """Registrado ✅
• Cliente: {client}
• Monto: {amount}
{since_line}
¿Quieres agregar otro o me preguntas "¿Quién me debe?\""""

DEBT_MISSING_AMOUNT_MESSAGE = """No pude identificar el monto. Ejemplo:
• "Juan me debe 8500 desde el 3 de mayo"
• "María me debe 2k desde ayer\""""

NO_DEBTS_MESSAGE = "✅ No tienes deudas registradas por cobrar."

DEBT_LIST_HEADER = "📌 Te deben:"

PRIORITIZE_MESSAGE = "📌 Cobra primero a *{client}* por *{amount}*.{since}"
PRIORITIZE_TOTALS_HEADER = "Total por cliente:"

MARK_PAID_MESSAGE = "🎉 Marqué como pagado a *{client}* ({count} deuda(s) por {amount})."
CLIENT_HAS_NO_DEBTS_MESSAGE = "No encuentro deudas pendientes de *{client}*."

PHONE_SAVED_MESSAGE = "📇 Guardé el número de *{client}*: {phone}"
PHONE_INVALID_MESSAGE = "Ese número no parece válido. Ejemplo: \"guarda tel de Juan 5512345678\""

# ============================================================
# REMINDERS (choose_tone -> confirm_send)
# ============================================================

REMIND_WHO_MESSAGE = "¿A quién le mando el recordatorio? Ejemplo: \"Recuérdale a Juan\""

REMIND_NEEDS_PHONE_MESSAGE = """No tengo el número de *{client}*.
Guárdalo así: "guarda tel de {client} 5512345678" y vuelve a pedirme el recordatorio."""

CHOOSE_TONE_MESSAGE = """¿Con qué tono le escribo a *{client}* ({amount})?
1) Amable
2) Firme
3) Formal
(o escribe *cancelar*)"""

CHOOSE_TONE_RETRY_MESSAGE = "Elige un tono: *amable*, *firme* o *formal* (o escribe *cancelar*)."

CONFIRM_SEND_MESSAGE = """Este es el mensaje para *{client}*:

"{draft}"

¿Lo envío? Responde *sí* o *no*."""

CONFIRM_SEND_RETRY_MESSAGE = "Responde *sí* para enviarlo o *no* para descartarlo."

REMINDER_SENT_MESSAGE = "📤 Listo, le envié el recordatorio a *{client}*."
REMINDER_FAILED_MESSAGE = "⚠️ No pude enviar el mensaje a *{client}*. Intenta de nuevo en un rato."
REMINDER_DISCARDED_MESSAGE = "👌 Descartado, no le envié nada."

# {business} is the owner's business name (or a neutral fallback)
REMINDER_TEMPLATES = {
    "amable": "Hola {client} 👋, ¿cómo estás? Te escribo de parte de {business} para recordarte amablemente el saldo pendiente de {amount}. ¡Gracias!",
    "firme": "Hola {client}. Te recuerdo que tienes un saldo pendiente de {amount} con {business}. Por favor realiza tu pago a la brevedad.",
    "formal": "Estimado(a) {client}: le recordamos que mantiene un adeudo de {amount} con {business}. Agradeceremos su pago a la brevedad. Saludos cordiales.",
}

DEFAULT_BUSINESS_NAME = "tu proveedor"

# ============================================================
# PLANS & BILLING
# ============================================================

PRICING_MESSAGE = """💳 *Planes CobraYa*

*Gratis:* {free_limit} acciones al día (registrar, priorizar, recordar, marcar pagos).
*Pro:* ilimitado.
• Mensual: {monthly}
• Anual: {yearly}

Escribe "quiero pro" para probar {trial_days} días gratis o *pagar* para suscribirte."""

PAYWALL_MESSAGE = """🚫 Llegaste a tu límite de {limit} acciones de hoy.

Con *Pro* no tienes límite. Escribe *pagar* para suscribirte o vuelve mañana."""

LOW_BALANCE_MESSAGE = "⚠️ Te quedan {remaining} acciones gratis hoy. Escribe *precios* para ver Pro."

MY_PLAN_FREE_MESSAGE = "Tu plan: *Gratis*. Hoy llevas {used} de {limit} acciones."
MY_PLAN_PRO_MESSAGE = "Tu plan: *Pro* ({source}){until} ✨ Sin límite de acciones."

PLAN_SOURCE_LABELS = {
    "trial": "prueba gratis",
    "admin": "cortesía",
    "billing": "suscripción",
    "grace": "pago pendiente",
    "plan": "activo",
}

ALREADY_PRO_MESSAGE = "✨ Ya tienes Pro activo. ¡A cobrar!"

ASK_NAME_MESSAGE = "¡Va! Para activar tu prueba, ¿cómo se llama tu negocio?"
ASK_NAME_RETRY_MESSAGE = "Escríbeme el nombre de tu negocio (o *cancelar*)."

ASK_CYCLE_MESSAGE = """¿Cómo prefieres pagar cuando termine la prueba?
1) Mensual ({monthly})
2) Anual ({yearly})"""

ASK_CYCLE_CHECKOUT_MESSAGE = """¿Qué plan quieres?
1) Mensual ({monthly})
2) Anual ({yearly})"""

ASK_CYCLE_RETRY_MESSAGE = "Responde *mensual* o *anual* (o *cancelar*)."

TRIAL_ACTIVATED_MESSAGE = """🎉 ¡Listo, {business}! Tienes *Pro gratis por {days} días* (hasta {until}).

Cuando quieras quedarte, escribe *pagar*."""

TRIAL_ALREADY_USED_MESSAGE = "Ya usaste tu prueba gratis. Escribe *pagar* para suscribirte a Pro."

CHECKOUT_LINK_MESSAGE = """💳 Aquí está tu link de pago ({cycle}):
{url}

En cuanto se confirme el pago te aviso por aquí."""

CHECKOUT_FAILED_MESSAGE = "⚠️ No pude generar tu link de pago. Intenta de nuevo en unos minutos."

PAYMENT_CONFIRMED_MESSAGE = "✅ ¡Pago confirmado! Ya tienes *CobraYa Pro*. Gracias por tu confianza."
PAYMENT_FAILED_MESSAGE = """⚠️ No pudimos cobrar tu suscripción Pro.
Mantienes Pro hasta el {until}; actualiza tu método de pago para no perderlo."""
SUBSCRIPTION_CANCELLED_MESSAGE = "Tu suscripción Pro terminó. Sigues con el plan gratis; escribe *pagar* cuando quieras volver."

# ============================================================
# SUPPORT
# ============================================================

SUPPORT_PROMPT_MESSAGE = "🛟 Cuéntame en un mensaje qué pasó y lo reviso (o *cancelar*)."
SUPPORT_RECEIVED_MESSAGE = "🙏 Gracias, registré tu reporte #{ticket}. Te contactamos pronto."

# ============================================================
# DAILY DIGEST
# ============================================================

DIGEST_HEADER = "📌 *Recordatorio de cobranza (hoy)*\n\nTengo estas deudas pendientes que conviene revisar:\n"
DIGEST_FOOTER = """
Responde aquí con uno de estos:
• "¿A quién cobro primero?"
• "Recuérdale a {Nombre}"
• "¿Quién me debe?\""""
