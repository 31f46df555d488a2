from tortoise import BaseDBAsyncClient


async def upgrade(db: BaseDBAsyncClient) -> str:
    return """
        CREATE TABLE IF NOT EXISTS "employers" (
    "id" SERIAL NOT NULL PRIMARY KEY,
    "employer_name" VARCHAR(255) NOT NULL,
    "created_at" TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);
CREATE TABLE IF NOT EXISTS "sites" (
    "id" SERIAL NOT NULL PRIMARY KEY,
    "site_name" VARCHAR(255) NOT NULL,
    "created_at" TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    "employer_id" INT NOT NULL REFERENCES "employers" ("id") ON DELETE CASCADE
);
CREATE TABLE IF NOT EXISTS "workers" (
    "id" SERIAL NOT NULL PRIMARY KEY,
    "given_name" VARCHAR(120),
    "family_name" VARCHAR(120),
    "mobile_number" VARCHAR(32),
    "phone_number" VARCHAR(32),
    "email" VARCHAR(255),
    "occupation" VARCHAR(120),
    "date_of_birth" DATE,
    "is_active" BOOL NOT NULL DEFAULT True,
    "created_at" TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    "updated_at" TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    "employer_id" INT REFERENCES "employers" ("id") ON DELETE SET NULL
);
CREATE INDEX IF NOT EXISTS "idx_workers_employe_3b1b0c" ON "workers" ("employer_id", "is_active");
CREATE INDEX IF NOT EXISTS "idx_workers_mobile__5f0b8e" ON "workers" ("mobile_number");
CREATE TABLE IF NOT EXISTS "medical_centers" (
    "id" SERIAL NOT NULL PRIMARY KEY,
    "name" VARCHAR(255) NOT NULL,
    "phone_number" VARCHAR(32),
    "address" VARCHAR(255),
    "suburb" VARCHAR(120),
    "postcode" VARCHAR(16),
    "preferred_provider" BOOL NOT NULL DEFAULT False,
    "active" BOOL NOT NULL DEFAULT True,
    "created_at" TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);
CREATE TABLE IF NOT EXISTS "incidents" (
    "id" SERIAL NOT NULL PRIMARY KEY,
    "incident_number" VARCHAR(32) NOT NULL UNIQUE,
    "date_of_injury" DATE,
    "time_of_injury" VARCHAR(16),
    "injury_type" VARCHAR(120),
    "injury_description" TEXT,
    "body_part" VARCHAR(120),
    "body_side" VARCHAR(32),
    "classification" VARCHAR(32),
    "treatment_provided" TEXT,
    "incident_status" VARCHAR(64) NOT NULL DEFAULT 'Voice Agent',
    "case_notes" TEXT,
    "notifying_person_name" VARCHAR(255),
    "notifying_person_telephone" VARCHAR(32),
    "notifying_person_position" VARCHAR(120),
    "source_call_id" VARCHAR(191) UNIQUE,
    "needs_review" BOOL NOT NULL DEFAULT False,
    "review_reason" VARCHAR(255),
    "created_at" TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    "updated_at" TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    "employer_id" INT NOT NULL REFERENCES "employers" ("id") ON DELETE RESTRICT,
    "site_id" INT REFERENCES "sites" ("id") ON DELETE SET NULL,
    "worker_id" INT REFERENCES "workers" ("id") ON DELETE SET NULL
);
CREATE INDEX IF NOT EXISTS "idx_incidents_employe_6a4d2f" ON "incidents" ("employer_id", "created_at");
CREATE INDEX IF NOT EXISTS "idx_incidents_needs_r_0d3c1e" ON "incidents" ("needs_review");
CREATE TABLE IF NOT EXISTS "incident_activity_log" (
    "id" SERIAL NOT NULL PRIMARY KEY,
    "action_type" VARCHAR(64) NOT NULL,
    "summary" VARCHAR(500) NOT NULL,
    "details" TEXT,
    "actor_name" VARCHAR(120),
    "metadata" JSONB,
    "created_at" TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    "incident_id" INT NOT NULL REFERENCES "incidents" ("id") ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS "idx_incident_ac_inciden_93e2aa" ON "incident_activity_log" ("incident_id", "created_at");
CREATE TABLE IF NOT EXISTS "appointments" (
    "id" SERIAL NOT NULL PRIMARY KEY,
    "source_call_id" VARCHAR(191) UNIQUE,
    "appointment_type" VARCHAR(64) NOT NULL DEFAULT 'initial_consultation',
    "scheduled_for" VARCHAR(64) NOT NULL,
    "doctor_name" VARCHAR(255),
    "location" VARCHAR(255),
    "notes" TEXT,
    "status" VARCHAR(9) NOT NULL DEFAULT 'confirmed',
    "created_at" TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    "updated_at" TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    "incident_id" INT NOT NULL REFERENCES "incidents" ("id") ON DELETE CASCADE,
    "medical_center_id" INT REFERENCES "medical_centers" ("id") ON DELETE SET NULL,
    "worker_id" INT REFERENCES "workers" ("id") ON DELETE SET NULL
);
CREATE INDEX IF NOT EXISTS "idx_appointment_inciden_51f0c2" ON "appointments" ("incident_id", "status");
COMMENT ON COLUMN "appointments"."status" IS 'CONFIRMED: confirmed\nCANCELLED: cancelled';
CREATE TABLE IF NOT EXISTS "booking_workflows" (
    "id" SERIAL NOT NULL PRIMARY KEY,
    "doctor_preference" VARCHAR(64) NOT NULL DEFAULT 'any',
    "preferred_doctor_name" VARCHAR(255),
    "urgency" VARCHAR(6) NOT NULL DEFAULT 'normal',
    "status" VARCHAR(22) NOT NULL DEFAULT 'pending',
    "available_times" JSONB,
    "patient_preferred_doctor" VARCHAR(255),
    "patient_confirmed_time" VARCHAR(128),
    "patient_call_attempts" INT NOT NULL DEFAULT 0,
    "current_call_id" VARCHAR(191),
    "current_call_started_at" TIMESTAMP,
    "current_call_ended_at" TIMESTAMP,
    "last_call_type" VARCHAR(14),
    "confirmed_datetime" VARCHAR(128),
    "confirmed_doctor_name" VARCHAR(255),
    "failure_reason" TEXT,
    "requested_by" VARCHAR(120),
    "created_at" TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    "updated_at" TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    "appointment_id" INT REFERENCES "appointments" ("id") ON DELETE SET NULL,
    "incident_id" INT NOT NULL REFERENCES "incidents" ("id") ON DELETE CASCADE,
    "medical_center_id" INT NOT NULL REFERENCES "medical_centers" ("id") ON DELETE RESTRICT,
    "worker_id" INT REFERENCES "workers" ("id") ON DELETE SET NULL
);
CREATE INDEX IF NOT EXISTS "idx_booking_wor_status_7c2e51" ON "booking_workflows" ("status", "updated_at");
CREATE INDEX IF NOT EXISTS "idx_booking_wor_current_a1d9f3" ON "booking_workflows" ("current_call_id");
COMMENT ON COLUMN "booking_workflows"."urgency" IS 'NORMAL: normal\nURGENT: urgent';
COMMENT ON COLUMN "booking_workflows"."status" IS 'PENDING: pending\nCALLING_MEDICAL_CENTER: calling_medical_center\nAWAITING_PATIENT_RETRY: awaiting_patient_retry\nCALLING_PATIENT: calling_patient\nCONFIRMING_BOOKING: confirming_booking\nCOMPLETED: completed\nFAILED: failed';
COMMENT ON COLUMN "booking_workflows"."last_call_type" IS 'MEDICAL_CENTER: medical_center\nPATIENT: patient';
CREATE TABLE IF NOT EXISTS "voice_tasks" (
    "id" SERIAL NOT NULL PRIMARY KEY,
    "appointment_id" INT,
    "task_type" VARCHAR(23) NOT NULL,
    "priority" INT NOT NULL DEFAULT 5,
    "status" VARCHAR(11) NOT NULL DEFAULT 'pending',
    "target_phone" VARCHAR(32) NOT NULL,
    "target_name" VARCHAR(255),
    "context_data" JSONB,
    "retell_call_id" VARCHAR(191) UNIQUE,
    "failure_reason" TEXT,
    "scheduled_at" TIMESTAMP,
    "created_by" VARCHAR(64) NOT NULL DEFAULT 'ai_booking_agent',
    "created_at" TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    "updated_at" TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    "booking_workflow_id" INT REFERENCES "booking_workflows" ("id") ON DELETE CASCADE,
    "incident_id" INT NOT NULL REFERENCES "incidents" ("id") ON DELETE CASCADE,
    "medical_center_id" INT REFERENCES "medical_centers" ("id") ON DELETE SET NULL,
    "worker_id" INT REFERENCES "workers" ("id") ON DELETE SET NULL
);
CREATE INDEX IF NOT EXISTS "idx_voice_tasks_booking_4e8f10" ON "voice_tasks" ("booking_workflow_id", "created_at");
CREATE INDEX IF NOT EXISTS "idx_voice_tasks_status_2b7a9d" ON "voice_tasks" ("status", "scheduled_at");
COMMENT ON COLUMN "voice_tasks"."task_type" IS 'BOOKING_GET_TIMES: booking_get_times\nBOOKING_PATIENT_CONFIRM: booking_patient_confirm\nBOOKING_FINAL_CONFIRM: booking_final_confirm\nCHECK_IN: check_in\nREMINDER: reminder\nFOLLOW_UP: follow_up\nSURVEY: survey';
COMMENT ON COLUMN "voice_tasks"."status" IS 'PENDING: pending\nIN_PROGRESS: in_progress\nCOMPLETED: completed\nFAILED: failed';
CREATE TABLE IF NOT EXISTS "booking_call_history" (
    "id" SERIAL NOT NULL PRIMARY KEY,
    "call_sequence" INT NOT NULL,
    "call_target" VARCHAR(14) NOT NULL,
    "task_type" VARCHAR(64) NOT NULL,
    "target_phone" VARCHAR(32) NOT NULL,
    "target_name" VARCHAR(255),
    "provider_call_id" VARCHAR(191) NOT NULL UNIQUE,
    "started_at" TIMESTAMP,
    "ended_at" TIMESTAMP,
    "outcome" VARCHAR(11) NOT NULL DEFAULT 'in_progress',
    "failure_reason" TEXT,
    "extracted_data" JSONB,
    "created_at" TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    "voice_task_id" INT UNIQUE REFERENCES "voice_tasks" ("id") ON DELETE SET NULL,
    "workflow_id" INT NOT NULL REFERENCES "booking_workflows" ("id") ON DELETE CASCADE,
    CONSTRAINT "uid_booking_cal_workflo_8d1e44" UNIQUE ("workflow_id", "call_sequence")
);
COMMENT ON COLUMN "booking_call_history"."call_target" IS 'MEDICAL_CENTER: medical_center\nPATIENT: patient';
COMMENT ON COLUMN "booking_call_history"."outcome" IS 'IN_PROGRESS: in_progress\nCOMPLETED: completed\nNO_ANSWER: no_answer\nFAILED: failed';
CREATE TABLE IF NOT EXISTS "incident_staging" (
    "id" SERIAL NOT NULL PRIMARY KEY,
    "call_id" VARCHAR(191) NOT NULL UNIQUE,
    "employer_id" INT,
    "employer_name" VARCHAR(255),
    "site_id" INT,
    "site_name" VARCHAR(255),
    "worker_id" INT,
    "worker_name" VARCHAR(255),
    "caller_name" VARCHAR(255),
    "caller_role" VARCHAR(120),
    "caller_position" VARCHAR(120),
    "caller_phone" VARCHAR(32),
    "injury_type" VARCHAR(120),
    "injury_description" TEXT,
    "body_part_injured" VARCHAR(120),
    "body_side" VARCHAR(32),
    "severity" VARCHAR(32),
    "date_of_injury" VARCHAR(64),
    "time_of_injury" VARCHAR(32),
    "treatment_received" TEXT,
    "witness_name" VARCHAR(255),
    "caller_was_witness" BOOL,
    "processed_at" TIMESTAMP,
    "created_at" TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    "updated_at" TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);
CREATE TABLE IF NOT EXISTS "aerich" (
    "id" SERIAL NOT NULL PRIMARY KEY,
    "version" VARCHAR(255) NOT NULL,
    "app" VARCHAR(100) NOT NULL,
    "content" JSONB NOT NULL
);"""


async def downgrade(db: BaseDBAsyncClient) -> str:
    return """
        """
