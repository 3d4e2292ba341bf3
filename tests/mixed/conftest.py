"""
Shared fixtures for mixed model tests.

Provides the lme4 sleepstudy data plus synthetic datasets with known
structure.
"""

import numpy as np
import pytest


SLEEPSTUDY_REACTION = np.array([
    249.5600, 258.7047, 250.8006, 321.4398, 356.8519,
    414.6901, 382.2038, 290.1486, 430.5853, 466.3535,
    222.7339, 205.2658, 202.9778, 204.7070, 207.7161,
    215.9618, 213.6303, 217.7272, 224.2957, 237.3142,
    199.0539, 194.3322, 234.3200, 232.8416, 229.3074,
    220.4579, 235.4208, 255.7511, 261.0125, 247.5153,
    321.5426, 300.4002, 283.8565, 285.1330, 285.7973,
    297.5855, 280.2396, 318.2613, 305.3495, 354.0487,
    287.6079, 285.0000, 301.8206, 320.1153, 316.2773,
    293.3187, 290.0750, 334.8177, 293.7469, 371.5811,
    234.8606, 242.8118, 272.9613, 309.7688, 317.4629,
    309.9976, 454.1619, 346.8311, 330.3003, 253.8644,
    283.8424, 289.5550, 276.7693, 299.8097, 297.1710,
    338.1665, 340.8485, 305.3211, 354.0032, 387.6167,
    265.4731, 276.2012, 243.3647, 254.6723, 279.0244,
    284.1912, 305.5248, 331.5229, 335.7469, 377.2990,
    241.6083, 273.9472, 254.4907, 270.8021, 251.4519,
    254.6362, 245.4523, 235.3110, 235.7541, 237.2466,
    312.3666, 313.8058, 291.6112, 346.1222, 365.7324,
    391.8385, 404.2601, 416.6923, 455.8643, 458.9167,
    236.1032, 230.3167, 238.9256, 254.9220, 250.7103,
    269.7744, 281.5648, 308.1020, 336.2806, 351.6451,
    256.2968, 243.4543, 256.2046, 255.5271, 268.9165,
    329.7247, 379.4445, 362.9184, 394.4872, 389.0527,
    250.5265, 300.0576, 269.8939, 280.5891, 271.8274,
    304.6336, 287.7466, 266.5955, 321.5418, 347.5655,
    221.6771, 298.1939, 326.8785, 346.8555, 348.7402,
    352.8287, 354.4266, 360.4326, 375.6406, 388.5417,
    271.9235, 268.4369, 257.2424, 277.6566, 314.8222,
    317.2135, 298.1353, 348.1229, 340.2800, 366.5131,
    225.2640, 234.5235, 238.9008, 240.4730, 267.5373,
    344.1937, 281.1481, 347.5855, 365.1630, 372.2288,
    269.8804, 272.4428, 277.8989, 281.7895, 279.1705,
    284.5120, 259.2658, 304.6306, 350.7807, 369.4692,
    269.4117, 273.4740, 297.5968, 310.6316, 287.1726,
    329.6076, 334.4818, 343.2199, 369.1417, 364.1236,
])

SLEEPSTUDY_SUBJECTS = [
    '308', '309', '310', '330', '331', '332', '333', '334', '335',
    '337', '349', '350', '351', '352', '369', '370', '371', '372',
]


@pytest.fixture
def rng():
    """Seeded random number generator for reproducible tests."""
    return np.random.default_rng(2024)


@pytest.fixture(scope='session')
def sleepstudy():
    """lme4 sleepstudy: Reaction ~ Days + (1 + Days | Subject).

    18 subjects, 10 days each = 180 observations.
    """
    n_subjects = len(SLEEPSTUDY_SUBJECTS)
    days = np.tile(np.arange(10, dtype=float), n_subjects)
    subject = np.repeat(np.array(SLEEPSTUDY_SUBJECTS), 10)
    X = np.column_stack([np.ones(len(days)), days])
    return {
        'y': SLEEPSTUDY_REACTION.copy(), 'X': X,
        'subject': subject, 'days': days,
        'n_subjects': n_subjects,
        'coef_names': ['(Intercept)', 'Days'],
    }


@pytest.fixture
def balanced_oneway(rng):
    """Balanced one-way layout: y ~ 1 + (1 | group), 8 groups × 6 obs."""
    n_groups = 8
    n_per_group = 6
    n = n_groups * n_per_group

    group = np.repeat(np.arange(n_groups), n_per_group)
    group_effects = rng.normal(0, 2.0, size=n_groups)
    y = 10.0 + group_effects[group] + rng.normal(0, 1.0, size=n)

    return {
        'y': y, 'X': np.ones((n, 1)), 'group': group,
        'n_groups': n_groups, 'n_per_group': n_per_group,
    }


@pytest.fixture
def random_intercept_simple(rng):
    """Simple random intercept dataset: y ~ x + (1 | group).

    20 groups, 10 observations each = 200 observations.
    """
    n_groups = 20
    n_per_group = 10
    n = n_groups * n_per_group

    beta0 = 5.0
    beta1 = 2.0
    sigma_group = 3.0
    sigma_resid = 1.0

    group_effects = rng.normal(0, sigma_group, size=n_groups)
    group = np.repeat(np.arange(n_groups), n_per_group)
    x = rng.normal(0, 1, size=n)

    y = beta0 + beta1 * x + group_effects[group] + rng.normal(0, sigma_resid, size=n)

    X = np.column_stack([np.ones(n), x])

    return {
        'y': y, 'X': X, 'group': group, 'x': x,
        'n_groups': n_groups, 'n_per_group': n_per_group,
        'beta0': beta0, 'beta1': beta1,
        'sigma_group': sigma_group, 'sigma_resid': sigma_resid,
    }


@pytest.fixture
def no_group_signal(rng):
    """Random intercept data with no between-group variance."""
    n_groups = 10
    n_per_group = 10
    n = n_groups * n_per_group
    group = np.repeat(np.arange(n_groups), n_per_group)
    x = rng.normal(0, 1, size=n)
    y = 1.0 + 0.5 * x + rng.normal(0, 1.0, size=n)
    return {
        'y': y, 'X': np.column_stack([np.ones(n), x]), 'group': group,
    }


@pytest.fixture
def crossed_effects(rng):
    """Crossed random effects: y ~ x + (1 | subject) + (1 | item).

    30 subjects × 10 items = 300 observations.
    """
    n_subjects = 30
    n_items = 10
    n = n_subjects * n_items

    beta0 = 3.0
    beta1 = 1.5
    sigma_subject = 2.0
    sigma_item = 1.5
    sigma_resid = 1.0

    subject_effects = rng.normal(0, sigma_subject, size=n_subjects)
    item_effects = rng.normal(0, sigma_item, size=n_items)

    subject = np.repeat(np.arange(n_subjects), n_items)
    item = np.tile(np.arange(n_items), n_subjects)
    x = rng.normal(0, 1, size=n)

    y = (beta0 + beta1 * x
         + subject_effects[subject]
         + item_effects[item]
         + rng.normal(0, sigma_resid, size=n))

    X = np.column_stack([np.ones(n), x])

    return {
        'y': y, 'X': X, 'subject': subject, 'item': item, 'x': x,
        'n_subjects': n_subjects, 'n_items': n_items,
        'beta0': beta0, 'beta1': beta1,
        'sigma_subject': sigma_subject, 'sigma_item': sigma_item,
        'sigma_resid': sigma_resid,
    }


@pytest.fixture
def nested_effects(rng):
    """Nested random effects: y ~ x + (1 | classroom) + (1 | classroom:student).

    5 classrooms × 6 students × 4 observations = 120 observations.
    """
    n_classrooms = 5
    n_students_per = 6
    n_obs_per = 4
    n_students = n_classrooms * n_students_per
    n = n_students * n_obs_per

    beta0 = 10.0
    beta1 = 0.5
    sigma_classroom = 3.0
    sigma_student = 1.5
    sigma_resid = 1.0

    classroom_effects = rng.normal(0, sigma_classroom, size=n_classrooms)
    student_effects = rng.normal(0, sigma_student, size=n_students)

    classroom = np.repeat(
        np.repeat(np.arange(n_classrooms), n_students_per),
        n_obs_per
    )
    student = np.repeat(np.arange(n_students), n_obs_per)
    x = rng.normal(0, 1, size=n)

    y = (beta0 + beta1 * x
         + classroom_effects[classroom]
         + student_effects[student]
         + rng.normal(0, sigma_resid, size=n))

    X = np.column_stack([np.ones(n), x])

    return {
        'y': y, 'X': X, 'classroom': classroom, 'student': student, 'x': x,
        'n_classrooms': n_classrooms, 'n_students': n_students,
        'beta0': beta0, 'beta1': beta1,
        'sigma_classroom': sigma_classroom, 'sigma_student': sigma_student,
        'sigma_resid': sigma_resid,
    }
